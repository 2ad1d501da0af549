# file: src/pm25/evaluation.py
"""
Forecast error metrics with explicit NaN handling.

PM2.5 has missing days, so every metric masks non-finite pairs first and
returns NaN (not an error) when nothing is left to score.
"""

import logging
from typing import Dict

import numpy as np

logger = logging.getLogger(__name__)


def _valid_mask(y_true: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
    return np.isfinite(y_true) & np.isfinite(y_pred)


class ForecastMetrics:
    """Compute forecasting evaluation metrics"""

    @staticmethod
    def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """
        Root Mean Squared Error

        Masks NaN/inf pairs; NaN if no valid pairs remain.
        """
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        valid_mask = _valid_mask(y_true, y_pred)

        if valid_mask.sum() == 0:
            return np.nan

        return float(np.sqrt(np.mean((y_pred[valid_mask] - y_true[valid_mask]) ** 2)))

    @staticmethod
    def mae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """Mean Absolute Error (NaN-masked)"""
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        valid_mask = _valid_mask(y_true, y_pred)

        if valid_mask.sum() == 0:
            return np.nan

        return float(np.mean(np.abs(y_pred[valid_mask] - y_true[valid_mask])))

    @staticmethod
    def mape(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """
        Mean Absolute Percentage Error (%)

        Also masks y_true ~ 0, where the ratio is undefined.
        """
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        valid_mask = _valid_mask(y_true, y_pred) & (np.abs(y_true) > 1e-10)

        if valid_mask.sum() == 0:
            return np.nan

        ape = np.abs((y_pred[valid_mask] - y_true[valid_mask]) / np.abs(y_true[valid_mask]))
        return float(100 * np.mean(ape))

    @staticmethod
    def bias(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """Mean residual (observed - predicted); positive means under-forecasting"""
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        valid_mask = _valid_mask(y_true, y_pred)

        if valid_mask.sum() == 0:
            return np.nan

        return float(np.mean(y_true[valid_mask] - y_pred[valid_mask]))

    @staticmethod
    def compute_all(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
        """All metrics at once"""
        return {
            "rmse": ForecastMetrics.rmse(y_true, y_pred),
            "mae": ForecastMetrics.mae(y_true, y_pred),
            "mape": ForecastMetrics.mape(y_true, y_pred),
            "bias": ForecastMetrics.bias(y_true, y_pred),
        }


def compute_series_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    valid_threshold: int = 1,
) -> Dict[str, float]:
    """
    Compute metrics with explicit validation

    Args:
        y_true: Actual values
        y_pred: Predictions
        valid_threshold: Minimum valid pairs required

    Returns:
        Dictionary of metrics plus valid_count (and error when below threshold)
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    valid_count = int(_valid_mask(y_true, y_pred).sum())

    if valid_count < valid_threshold:
        return {
            "rmse": np.nan,
            "mae": np.nan,
            "mape": np.nan,
            "bias": np.nan,
            "valid_count": valid_count,
            "error": f"Insufficient valid predictions: {valid_count} < {valid_threshold}",
        }

    metrics = ForecastMetrics.compute_all(y_true, y_pred)
    metrics["valid_count"] = valid_count
    return metrics

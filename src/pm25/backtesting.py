"""
Cutoff / horizon cross-validation for the PM2.5 models.

Cutoffs are laid out from the end of the series backwards, every `period`
days, so the most recent cutoff leaves exactly `horizon` days to score and no
cutoff has less than `initial` days of history:

    |---- initial ----|c1|-- h --|
    |------- initial + period ------|c2|-- h --|

Two strategies:
1. Expanding window: train on everything up to the cutoff
2. Rolling window: train on the last `initial` days up to the cutoff

Both ensure no information leakage: every test day is strictly after the
cutoff, and regressors in the test window are the only future information a
model sees.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .evaluation import ForecastMetrics
from .models import ModelFactory

logger = logging.getLogger(__name__)


@dataclass
class BacktestSplit:
    """Represents a single train/test split"""
    split_id: int
    cutoff: pd.Timestamp
    train_start: pd.Timestamp
    test_start: pd.Timestamp
    test_end: pd.Timestamp
    train_indices: np.ndarray
    test_indices: np.ndarray

    def __post_init__(self):
        """Validate no leakage"""
        if self.cutoff >= self.test_start:
            raise ValueError(
                f"Train/test leakage: cutoff ({self.cutoff}) >= "
                f"test_start ({self.test_start})"
            )

    @property
    def train_end(self) -> pd.Timestamp:
        return self.cutoff

    @property
    def train_size(self) -> int:
        return len(self.train_indices)

    @property
    def test_size(self) -> int:
        return len(self.test_indices)

    @property
    def info(self) -> Dict:
        """Serialize split info"""
        return {
            "split_id": self.split_id,
            "cutoff": self.cutoff.isoformat(),
            "train_start": self.train_start.isoformat(),
            "test_start": self.test_start.isoformat(),
            "test_end": self.test_end.isoformat(),
            "train_size": self.train_size,
            "test_size": self.test_size,
        }


def generate_cutoff_positions(
    n: int,
    initial: int,
    horizon: int,
    period: int,
    max_splits: Optional[int] = None,
) -> List[int]:
    """
    Row positions of the cutoffs (last training row), oldest first.
    """
    if initial < 1 or horizon < 1 or period < 1:
        raise ValueError("initial, horizon and period must all be >= 1")

    if n < initial + horizon:
        raise ValueError(f"Series too short: {n} days < initial ({initial}) + horizon ({horizon})")

    positions = []
    cutoff = n - horizon - 1
    while cutoff + 1 >= initial:
        positions.append(cutoff)
        cutoff -= period

    positions.reverse()
    if max_splits is not None:
        positions = positions[-max_splits:]
    return positions


class ExpandingWindowBacktest:
    """Expanding window: train from the first day up to each cutoff"""

    def __init__(self, initial: int = 365, horizon: int = 14, period: int = 30, max_splits: Optional[int] = None):
        """
        Args:
            initial: Minimum days of history before the first cutoff
            horizon: Days forecast after each cutoff
            period: Days between consecutive cutoffs
            max_splits: Keep only the most recent N cutoffs
        """
        self.initial = initial
        self.horizon = horizon
        self.period = period
        self.max_splits = max_splits

    def _train_start_index(self, cutoff_idx: int) -> int:
        return 0

    def generate_splits(self, df: pd.DataFrame) -> List[BacktestSplit]:
        """
        Generate splits over a prepared daily frame [ds, y, ...]
        """
        series = df.sort_values("ds").reset_index(drop=True)
        positions = generate_cutoff_positions(
            len(series), self.initial, self.horizon, self.period, self.max_splits
        )

        splits = []
        for split_id, cutoff_idx in enumerate(positions):
            train_start_idx = self._train_start_index(cutoff_idx)
            test_end_idx = cutoff_idx + self.horizon

            splits.append(
                BacktestSplit(
                    split_id=split_id,
                    cutoff=series["ds"].iloc[cutoff_idx],
                    train_start=series["ds"].iloc[train_start_idx],
                    test_start=series["ds"].iloc[cutoff_idx + 1],
                    test_end=series["ds"].iloc[test_end_idx],
                    train_indices=np.arange(train_start_idx, cutoff_idx + 1),
                    test_indices=np.arange(cutoff_idx + 1, test_end_idx + 1),
                )
            )

        logger.info("Generated %s %s splits", len(splits), type(self).__name__)
        return splits


class RollingWindowBacktest(ExpandingWindowBacktest):
    """Rolling window: train on a fixed `initial`-day window ending at each cutoff"""

    def _train_start_index(self, cutoff_idx: int) -> int:
        return max(0, cutoff_idx + 1 - self.initial)


class BacktestingStrategy:
    """Unified interface for backtesting strategies"""

    _strategies = {
        "expanding": ExpandingWindowBacktest,
        "rolling": RollingWindowBacktest,
    }

    def __init__(
        self,
        strategy: str = "expanding",
        initial: int = 365,
        horizon: int = 14,
        period: int = 30,
        max_splits: Optional[int] = None,
    ):
        if strategy not in self._strategies:
            raise ValueError(f"Unknown strategy: {strategy}")

        self.strategy_name = strategy
        self.horizon = horizon
        self.strategy = self._strategies[strategy](
            initial=initial, horizon=horizon, period=period, max_splits=max_splits
        )

    def generate_splits(self, df: pd.DataFrame) -> List[BacktestSplit]:
        logger.info("Generating %s backtesting splits...", self.strategy_name)
        return self.strategy.generate_splits(df)

    def get_split_data(self, df: pd.DataFrame, split: BacktestSplit) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """(train_df, test_df) for one split"""
        series = df.sort_values("ds").reset_index(drop=True)
        return series.iloc[split.train_indices].copy(), series.iloc[split.test_indices].copy()

    def serialize_splits(self, splits: List[BacktestSplit]) -> Dict:
        return {
            "strategy": self.strategy_name,
            "n_splits": len(splits),
            "splits": [split.info for split in splits],
        }


def validate_backtesting_splits(splits: List[BacktestSplit], horizon: int) -> bool:
    """
    Check splits for leakage and consistent test size.
    """
    is_valid = True

    for split in splits:
        if split.cutoff >= split.test_start:
            logger.error("split %s: temporal leakage", split.split_id)
            is_valid = False

        if np.intersect1d(split.train_indices, split.test_indices).size:
            logger.error("split %s: overlapping indices", split.split_id)
            is_valid = False

        if split.test_size != horizon:
            logger.error("split %s: test size %s != horizon %s", split.split_id, split.test_size, horizon)
            is_valid = False

    return is_valid


class CrossValidator:
    """Fits every model on every split and collects out-of-sample forecasts"""

    def __init__(
        self,
        models: Sequence[str],
        backtest: BacktestingStrategy,
        regressors: Sequence[str] = (),
        model_params: Optional[Mapping[str, dict]] = None,
    ):
        self.models = list(models)
        self.backtest = backtest
        self.regressors = list(regressors)
        self.model_params = dict(model_params or {})
        self.failures: List[Dict] = []

    def run(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Returns:
            Long frame [model, split_id, cutoff, ds, horizon, y, yhat]
        """
        splits = self.backtest.generate_splits(df)
        if not validate_backtesting_splits(splits, self.backtest.horizon):
            raise ValueError("Invalid backtesting splits")

        logger.info("[cv] %s models x %s splits", len(self.models), len(splits))

        frames = []
        for split in splits:
            train_df, test_df = self.backtest.get_split_data(df, split)
            future = test_df.drop(columns=["y"])

            for model_name in self.models:
                try:
                    model = ModelFactory.create(
                        model_name,
                        regressors=self.regressors,
                        **self.model_params.get(model_name, {}),
                    )
                    model.fit(train_df)
                    yhat = model.predict(future)
                except Exception as e:
                    logger.warning(
                        "[cv] %s failed on split %s (cutoff %s): %s",
                        model_name, split.split_id, split.cutoff.date(), e,
                    )
                    self.failures.append({
                        "model": model_name,
                        "split_id": split.split_id,
                        "cutoff": split.cutoff,
                        "error": str(e),
                    })
                    continue

                frames.append(pd.DataFrame({
                    "model": model_name,
                    "split_id": split.split_id,
                    "cutoff": split.cutoff,
                    "ds": test_df["ds"].to_numpy(),
                    "horizon": (test_df["ds"] - split.cutoff).dt.days.to_numpy(),
                    "y": test_df["y"].to_numpy(dtype=float),
                    "yhat": np.asarray(yhat, dtype=float),
                }))

            logger.info("[cv] split %s/%s done (cutoff %s)", split.split_id + 1, len(splits), split.cutoff.date())

        if not frames:
            raise RuntimeError("Cross-validation produced no forecasts: every model failed on every split")

        return pd.concat(frames, ignore_index=True)


def cross_validate(
    df: pd.DataFrame,
    models: Sequence[str],
    strategy: str = "expanding",
    initial: int = 365,
    horizon: int = 14,
    period: int = 30,
    max_splits: Optional[int] = None,
    regressors: Sequence[str] = (),
    model_params: Optional[Mapping[str, dict]] = None,
) -> pd.DataFrame:
    """Convenience wrapper around CrossValidator"""
    backtest = BacktestingStrategy(
        strategy=strategy, initial=initial, horizon=horizon, period=period, max_splits=max_splits
    )
    return CrossValidator(models, backtest, regressors=regressors, model_params=model_params).run(df)


def performance_by_horizon(cv_df: pd.DataFrame) -> pd.DataFrame:
    """
    RMSE/MAE per model per horizon day, pooled across cutoffs.
    """
    rows = []
    for (model, horizon), group in cv_df.groupby(["model", "horizon"], sort=True):
        y_true = group["y"].to_numpy(dtype=float)
        y_pred = group["yhat"].to_numpy(dtype=float)
        rows.append({
            "model": model,
            "horizon": int(horizon),
            "rmse": ForecastMetrics.rmse(y_true, y_pred),
            "mae": ForecastMetrics.mae(y_true, y_pred),
            "valid_rows": int((np.isfinite(y_true) & np.isfinite(y_pred)).sum()),
        })
    return pd.DataFrame(rows, columns=["model", "horizon", "rmse", "mae", "valid_rows"])


def leaderboard(cv_df: pd.DataFrame) -> pd.DataFrame:
    """
    Per-model error across cutoffs, ranked by mean RMSE (lower is better).
    """
    metrics_rows = []
    for (model, cutoff), window in cv_df.groupby(["model", "cutoff"]):
        y_true = window["y"].to_numpy(dtype=float)
        y_pred = window["yhat"].to_numpy(dtype=float)
        metrics = ForecastMetrics.compute_all(y_true, y_pred)
        metrics.update({
            "model": model,
            "cutoff": cutoff,
            "valid_rows": int((np.isfinite(y_true) & np.isfinite(y_pred)).sum()),
        })
        metrics_rows.append(metrics)

    metrics_df = pd.DataFrame(metrics_rows)
    if metrics_df.empty:
        return pd.DataFrame()

    board = (
        metrics_df.groupby("model")
        .agg(
            rmse_mean=("rmse", "mean"),
            rmse_std=("rmse", "std"),
            mae_mean=("mae", "mean"),
            mae_std=("mae", "std"),
            bias_mean=("bias", "mean"),
            n_cutoffs=("cutoff", "nunique"),
            valid_rows=("valid_rows", "sum"),
        )
        .reset_index()
    )

    board = board.sort_values("rmse_mean").reset_index(drop=True)
    board["rank"] = board.index + 1
    return board

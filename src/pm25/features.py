# file: src/pm25/features.py
"""
Calendar features for the regression-style models (pandas only).

ETS, TBATS and ARIMA carry seasonality in the model itself; OLS and the
random forest only see what is in the design matrix, so they get calendar
columns on top of the weather/event regressors.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

import numpy as np
import pandas as pd


def add_calendar_features(df: pd.DataFrame, ds_col: str = "ds") -> pd.DataFrame:
    """
    Add basic calendar features from a datetime column.
    """
    features = df.copy()
    if ds_col not in features.columns:
        raise ValueError(f"Missing datetime column: {ds_col}")

    ds = pd.to_datetime(features[ds_col], errors="raise")
    features["dayofweek"] = ds.dt.dayofweek
    features["dayofyear"] = ds.dt.dayofyear
    features["month"] = ds.dt.month
    features["is_weekend"] = (ds.dt.dayofweek >= 5).astype(float)
    return features


def add_cyclic_features(df: pd.DataFrame, ds_col: str = "ds") -> pd.DataFrame:
    """
    Sine/cosine encodings of day-of-week and day-of-year.

    Linear models can't use raw month/day numbers sensibly; the cyclic pair
    keeps Dec 31 next to Jan 1.
    """
    features = df.copy()
    if ds_col not in features.columns:
        raise ValueError(f"Missing datetime column: {ds_col}")

    ds = pd.to_datetime(features[ds_col], errors="raise")
    features["dow_sin"] = np.sin(2 * np.pi * ds.dt.dayofweek / 7)
    features["dow_cos"] = np.cos(2 * np.pi * ds.dt.dayofweek / 7)
    features["doy_sin"] = np.sin(2 * np.pi * ds.dt.dayofyear / 365.25)
    features["doy_cos"] = np.cos(2 * np.pi * ds.dt.dayofyear / 365.25)
    return features


CALENDAR_COLUMNS = ("dayofweek", "dayofyear", "month", "is_weekend")
CYCLIC_COLUMNS = ("dow_sin", "dow_cos", "doy_sin", "doy_cos")


def build_design_matrix(
    df: pd.DataFrame,
    regressors: Iterable[str],
    calendar: str = "none",
) -> Tuple[pd.DataFrame, List[str]]:
    """
    Regressors plus optional calendar columns, as float.

    Args:
        df: Frame with a ds column and the regressor columns
        regressors: Covariate column names
        calendar: "none", "calendar" (raw calendar fields) or "cyclic"

    Returns:
        (X, feature_cols)
    """
    regressors = list(regressors)
    missing = [c for c in regressors if c not in df.columns]
    if missing:
        raise ValueError(f"Missing regressor columns: {missing}")

    if calendar == "none":
        features, extra = df, []
    elif calendar == "calendar":
        features, extra = add_calendar_features(df), list(CALENDAR_COLUMNS)
    elif calendar == "cyclic":
        features, extra = add_cyclic_features(df), list(CYCLIC_COLUMNS)
    else:
        raise ValueError(f"Unknown calendar mode: {calendar}")

    feature_cols = regressors + extra
    X = features[feature_cols].astype(float).reset_index(drop=True)
    return X, feature_cols


def informative_columns(X: pd.DataFrame) -> List[str]:
    """Columns that vary within X (constant columns make designs rank-deficient)."""
    return [c for c in X.columns if X[c].nunique(dropna=True) > 1]

"""
Load, prepare and validate the daily PM2.5 table.

Canonical frame used by every model:
- ds: timezone-naive daily timestamp, one row per date, complete daily grid
- y: PM2.5 (NaN where the measurement is missing)
- one column per regressor (numeric, gap-free)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

import numpy as np
import pandas as pd

from .config import PM25AnalysisConfig

logger = logging.getLogger(__name__)

_READERS = {
    ".pkl": pd.read_pickle,
    ".pickle": pd.read_pickle,
    ".parquet": pd.read_parquet,
    ".csv": pd.read_csv,
}


@dataclass
class ValidationResult:
    """Results of daily index validation"""
    is_valid: bool
    n_rows: int
    n_duplicates: int
    n_missing_days: int
    missing_days: List[pd.Timestamp]
    n_nulls: int
    value_min: float
    value_max: float
    is_monotonic: bool


def load_dataset(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read the pre-serialized table.

    Supports pickle, parquet and csv, chosen by file suffix.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")

    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        raise ValueError(
            f"Unsupported dataset format '{path.suffix}'. "
            f"Expected one of: {', '.join(sorted(_READERS))}"
        )

    df = reader(path)
    logger.info("[load] %s: %s rows, columns=%s", path, len(df), list(df.columns))
    return df


def _extract_dates(raw: pd.DataFrame, date_col: str) -> pd.Series:
    if date_col in raw.columns:
        dates = raw[date_col]
    elif isinstance(raw.index, pd.DatetimeIndex) or raw.index.name == date_col:
        dates = raw.index.to_series()
    else:
        raise ValueError(f"Missing date column '{date_col}' (not a column or the index)")

    ds = pd.to_datetime(dates, errors="raise")
    if getattr(ds.dt, "tz", None) is not None:
        ds = ds.dt.tz_localize(None)
    return ds.dt.normalize().reset_index(drop=True)


def prepare_dataset(raw: pd.DataFrame, config: PM25AnalysisConfig) -> pd.DataFrame:
    """
    Normalize the raw table into the canonical [ds, y, regressors...] frame.

    Steps:
    1. Dates from the column or the index, normalized to midnight
    2. Target to numeric (missing stays NaN)
    3. Fail on duplicate dates
    4. Reindex onto a complete daily grid
    5. Forward/back fill regressor gaps (Prophet and ARIMA need full X)
    6. Day-over-day inversion change from the filled grid (derived when
       absent, recomputed on inserted days)
    """
    if raw.empty:
        raise ValueError("Dataset is empty")

    ds = _extract_dates(raw, config.date_col)
    frame = raw.reset_index(drop=True).copy()
    if config.date_col in frame.columns:
        frame = frame.drop(columns=[config.date_col])

    if config.target_col not in frame.columns:
        raise ValueError(f"Missing target column: {config.target_col}")

    derive_change = (
        config.inversion_change_col in config.regressors
        and config.inversion_col in config.regressors
        and config.inversion_change_col not in frame.columns
        and config.inversion_col in frame.columns
    )
    supplied = [c for c in config.regressors if not (derive_change and c == config.inversion_change_col)]

    missing = [c for c in supplied if c not in frame.columns]
    if missing:
        raise ValueError(f"Missing regressor columns: {missing}")

    out = pd.DataFrame({
        "ds": ds,
        "y": pd.to_numeric(frame[config.target_col], errors="coerce"),
    })
    for col in supplied:
        out[col] = pd.to_numeric(frame[col].astype(float), errors="raise")

    n_dupes = int(out["ds"].duplicated(keep=False).sum())
    if n_dupes:
        raise ValueError(f"Duplicate dates in dataset: {n_dupes} rows share a date")

    out = out.sort_values("ds").set_index("ds")
    grid = pd.date_range(out.index.min(), out.index.max(), freq="D", name="ds")
    n_added = len(grid) - len(out)
    inserted = ~grid.isin(out.index)
    out = out.reindex(grid)

    n_filled = int(out[supplied].isna().sum().sum())
    out[supplied] = out[supplied].ffill().bfill()

    # Change column is day-over-day on the filled grid, not copied across gaps
    if config.inversion_change_col in config.regressors and config.inversion_col in out.columns:
        change = out[config.inversion_col].diff().fillna(0.0)
        if derive_change:
            out[config.inversion_change_col] = change
            logger.info("[prepare] derived %s from %s", config.inversion_change_col, config.inversion_col)
        else:
            out.loc[inserted, config.inversion_change_col] = change[inserted]

    out = out[["y", *config.regressors]].reset_index()

    logger.info(
        "[prepare] %s days %s..%s (added %s missing dates, filled %s regressor gaps, %s missing targets)",
        len(out),
        out["ds"].min().date(),
        out["ds"].max().date(),
        n_added,
        n_filled,
        int(out["y"].isna().sum()),
    )
    return out


def validate_daily_index(df: pd.DataFrame) -> ValidationResult:
    """
    Validate the daily index of a prepared frame.

    Checks:
    1. No duplicate dates
    2. Complete daily grid (missing days)
    3. Monotonic increasing dates
    4. Target sanity (nulls, bounds)
    """
    n_duplicates = int(df.duplicated(subset=["ds"], keep=False).sum())

    df_sorted = df.sort_values("ds")
    expected = pd.date_range(df_sorted["ds"].min(), df_sorted["ds"].max(), freq="D")
    missing_days = sorted(set(expected) - set(df_sorted["ds"]))

    is_monotonic = bool(df["ds"].is_monotonic_increasing)

    is_valid = n_duplicates == 0 and not missing_days and is_monotonic

    return ValidationResult(
        is_valid=is_valid,
        n_rows=len(df),
        n_duplicates=n_duplicates,
        n_missing_days=len(missing_days),
        missing_days=missing_days[:10],
        n_nulls=int(df["y"].isna().sum()),
        value_min=float(df["y"].min()),
        value_max=float(df["y"].max()),
        is_monotonic=is_monotonic,
    )


def print_validation_report(result: ValidationResult) -> None:
    """Print a human-readable validation report"""
    status = "PASS" if result.is_valid else "FAIL"
    print(f"\n=== Validation Report: {status} ===")
    print(f"Rows: {result.n_rows}")
    print(f"Duplicates: {result.n_duplicates}")
    print(f"Missing days: {result.n_missing_days}")
    if result.missing_days:
        print(f"  First missing: {result.missing_days[:5]}")
    print(f"Missing PM2.5: {result.n_nulls}")
    print(f"PM2.5 range: {result.value_min:.1f} to {result.value_max:.1f}")
    print(f"Monotonic: {result.is_monotonic}")


def target_filled(df: pd.DataFrame) -> np.ndarray:
    """
    Target with gaps filled, for models that reject missing observations.

    Interior gaps are linearly interpolated; leading/trailing gaps take the
    nearest observed value.
    """
    y = df["y"].astype(float)
    if y.notna().sum() == 0:
        raise ValueError("Target has no observed values")
    return y.interpolate(method="linear", limit_direction="both").to_numpy()

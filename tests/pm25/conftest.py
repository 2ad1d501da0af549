"""Synthetic daily PM2.5 tables shaped like the real input file."""

import numpy as np
import pandas as pd
import pytest

from src.pm25.config import PM25AnalysisConfig


def make_raw_pm25(n_days: int = 400, missing_frac: float = 0.05, seed: int = 42) -> pd.DataFrame:
    """
    Date-indexed table: pm25 (with gaps), inversion, inversion_diff,
    wind_speed, precipitation, fireworks.
    """
    rng = np.random.default_rng(seed)
    dates = pd.date_range("2019-01-01", periods=n_days, freq="D", name="date")
    t = np.arange(n_days)

    inversion = rng.random(n_days) < 0.25
    wind_speed = rng.gamma(2.0, 2.0, n_days)
    precipitation = np.where(rng.random(n_days) < 0.2, rng.exponential(5.0, n_days), 0.0)
    fireworks = np.isin(dates.dayofyear, [1, 185])

    pm25 = (
        25
        + 8 * np.sin(2 * np.pi * t / 365.25)
        + 3 * np.sin(2 * np.pi * t / 7)
        + 12 * inversion
        - 1.5 * wind_speed
        - 0.4 * precipitation
        + 30 * fireworks
        + rng.normal(0, 2, n_days)
    )
    pm25[rng.random(n_days) < missing_frac] = np.nan

    df = pd.DataFrame(
        {
            "pm25": pm25,
            "inversion": inversion,
            "wind_speed": wind_speed,
            "precipitation": precipitation,
            "fireworks": fireworks,
        },
        index=dates,
    )
    df["inversion_diff"] = df["inversion"].astype(int).diff().fillna(0).astype(int)
    return df


@pytest.fixture
def raw_pm25():
    return make_raw_pm25()


@pytest.fixture
def config():
    return PM25AnalysisConfig(
        rf_n_estimators=50,
        cv_initial_days=200,
        cv_period_days=60,
        cv_horizon_days=7,
    )


@pytest.fixture
def prepared(raw_pm25, config):
    from src.pm25.dataset import prepare_dataset

    return prepare_dataset(raw_pm25, config)

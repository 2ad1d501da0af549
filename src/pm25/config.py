from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class PM25AnalysisConfig:
    # Input table
    data_path: Optional[str] = None
    date_col: str = "date"
    target_col: str = "pm25"
    regressors: Tuple[str, ...] = (
        "inversion",
        "inversion_diff",
        "wind_speed",
        "precipitation",
        "fireworks",
    )
    inversion_col: str = "inversion"
    inversion_change_col: str = "inversion_diff"
    fireworks_col: str = "fireworks"

    # Models
    models: Tuple[str, ...] = (
        "ols",
        "random_forest",
        "ets",
        "tbats",
        "arimax",
        "prophet",
    )
    season_length: int = 7
    yearly_season: int = 365
    rf_n_estimators: int = 500
    rf_min_samples_leaf: int = 3
    random_state: int = 42
    changepoint_prior_scale: float = 0.05

    # Cross-validation (days)
    cv_strategy: str = "expanding"
    cv_initial_days: int = 365
    cv_period_days: int = 30
    cv_horizon_days: int = 14
    cv_max_splits: Optional[int] = None

    # IO
    data_dir: str = "data/pm25"
    artifacts_dir: str = "artifacts/pm25"
    reports_dir: str = "reports/pm25"
    overwrite: bool = False

    def run_id(self) -> str:
        return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    def model_params(self) -> dict:
        """Constructor kwargs per model name."""
        return {
            "random_forest": {
                "n_estimators": self.rf_n_estimators,
                "min_samples_leaf": self.rf_min_samples_leaf,
                "random_state": self.random_state,
            },
            "ets": {"season_length": self.season_length},
            "tbats": {"season_length": (self.season_length, self.yearly_season)},
            "arimax": {"season_length": self.season_length},
            "prophet": {"changepoint_prior_scale": self.changepoint_prior_scale},
        }

    def data_path_obj(self) -> Path:
        if not self.data_path:
            raise ValueError("data_path is not set. Pass --data-path or set PM25_DATA_PATH.")
        return Path(self.data_path)

    def data_dir_path(self) -> Path:
        return Path(self.data_dir)

    def artifacts_path(self) -> Path:
        return Path(self.artifacts_dir)

    def reports_path(self) -> Path:
        return Path(self.reports_dir)

    def clean_path(self) -> Path:
        return self.data_dir_path() / "clean.parquet"

    def metadata_path(self) -> Path:
        return self.data_dir_path() / "metadata.json"

    def validation_path(self) -> Path:
        return self.data_dir_path() / "validation.json"

    def residuals_path(self) -> Path:
        return self.artifacts_path() / "residuals.parquet"

    def residual_summary_path(self) -> Path:
        return self.artifacts_path() / "residual_summary.parquet"

    def summaries_path(self) -> Path:
        return self.artifacts_path() / "summaries.json"

    def cv_results_path(self) -> Path:
        return self.artifacts_path() / "cv_results.parquet"

    def performance_path(self) -> Path:
        return self.artifacts_path() / "performance_by_horizon.parquet"

    def cv_metadata_path(self) -> Path:
        return self.artifacts_path() / "cv_metadata.json"

    def leaderboard_path(self) -> Path:
        return self.artifacts_path() / "leaderboard.parquet"

    def plots_dir(self) -> Path:
        return self.reports_path() / "plots"


def load_config(**overrides) -> PM25AnalysisConfig:
    """
    Build the analysis config from defaults, environment and overrides.

    Reads PM25_DATA_PATH, PM25_ARTIFACTS_DIR and PM25_REPORTS_DIR from a .env
    file or the environment. Explicit keyword overrides win; None values are
    ignored so CLI options can be passed straight through.
    """
    load_dotenv()

    env_values = {
        "data_path": os.getenv("PM25_DATA_PATH"),
        "artifacts_dir": os.getenv("PM25_ARTIFACTS_DIR"),
        "reports_dir": os.getenv("PM25_REPORTS_DIR"),
    }

    values = {k: v for k, v in env_values.items() if v}
    values.update({k: v for k, v in overrides.items() if v is not None})

    cfg = replace(PM25AnalysisConfig(), **values)
    if not cfg.data_path:
        raise ValueError("PM25_DATA_PATH not found. Set it in .env, environment, or pass data_path.")
    return cfg

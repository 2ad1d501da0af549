"""
PM2.5 model comparison pipeline.

Modules:
- config: analysis configuration and paths
- dataset: load, prepare and validate the daily table
- features: calendar features for the regression models
- models: the six forecaster wrappers + ModelFactory
- evaluation: NaN-aware error metrics
- backtesting: cutoff/horizon cross-validation, leaderboard
- residuals: in-sample fits, residual columns and diagnostics
- plots: residual and cross-validation figures
- tasks: step-by-step orchestration writing artifacts
"""

from .backtesting import (BacktestingStrategy, BacktestSplit, CrossValidator,
                          cross_validate, leaderboard, performance_by_horizon)
from .config import PM25AnalysisConfig, load_config
from .dataset import (ValidationResult, load_dataset, prepare_dataset,
                      validate_daily_index)
from .evaluation import ForecastMetrics, compute_series_metrics
from .models import ForecastModel, ModelFactory
from .residuals import add_residual_columns, fit_models, residual_summary

__all__ = [
    # Config
    "PM25AnalysisConfig",
    "load_config",
    # Data
    "ValidationResult",
    "load_dataset",
    "prepare_dataset",
    "validate_daily_index",
    # Models
    "ForecastModel",
    "ModelFactory",
    # Evaluation
    "ForecastMetrics",
    "compute_series_metrics",
    # Cross-validation
    "BacktestSplit",
    "BacktestingStrategy",
    "CrossValidator",
    "cross_validate",
    "performance_by_horizon",
    "leaderboard",
    # Residuals
    "fit_models",
    "add_residual_columns",
    "residual_summary",
]

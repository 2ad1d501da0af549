from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .backtesting import BacktestingStrategy, CrossValidator, leaderboard, performance_by_horizon
from .config import PM25AnalysisConfig
from .dataset import load_dataset, prepare_dataset, validate_daily_index
from .io_utils import atomic_write_json, atomic_write_parquet, ensure_dir, read_frame
from .plots import (
    plot_cv_error_by_horizon,
    plot_cv_forecasts,
    plot_model_comparison,
    plot_residual_histograms,
    plot_residuals,
    plot_series,
)
from .residuals import add_residual_columns, fit_models, model_summaries, residual_summary

logger = logging.getLogger(__name__)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean_source(config: PM25AnalysisConfig) -> Optional[str]:
    """Source recorded next to the clean table, None when there is no metadata."""
    path = config.metadata_path()
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8")).get("source")


def prepare_data(config: PM25AnalysisConfig, run_id: str = "") -> str:
    clean_path = config.clean_path()
    ensure_dir(clean_path.parent)

    if clean_path.exists() and not config.overwrite:
        source = _clean_source(config)
        if source == str(config.data_path):
            logger.info("[prepare] clean exists, skipping: %s", clean_path)
            return str(clean_path)
        logger.info("[prepare] clean was built from %s, rebuilding from %s", source, config.data_path)

    raw = load_dataset(config.data_path_obj())
    df = prepare_dataset(raw, config)

    metadata = {
        "prepared_at": _utc_iso(),
        "run_id": run_id,
        "source": str(config.data_path),
        "raw_rows": int(len(raw)),
        "clean_rows": int(len(df)),
        "missing_target_days": int(df["y"].isna().sum()),
        "start_date": df["ds"].min().date().isoformat(),
        "end_date": df["ds"].max().date().isoformat(),
        "regressors": list(config.regressors),
    }

    atomic_write_parquet(df, clean_path)
    atomic_write_json(metadata, config.metadata_path())
    logger.info("[prepare] wrote clean: %s (%s rows)", clean_path, len(df))
    return str(clean_path)


def validate_data(clean_path: str, config: PM25AnalysisConfig, run_id: str = "") -> Dict:
    df = read_frame(clean_path)
    result = validate_daily_index(df)

    if not result.is_valid:
        raise ValueError(
            f"Daily index integrity failed: {result.n_duplicates} duplicates; "
            f"{result.n_missing_days} missing days; monotonic={result.is_monotonic}"
        )

    report = {
        "status": "valid",
        "run_id": run_id,
        "validated_at": _utc_iso(),
        "rows": result.n_rows,
        "missing_pm25": result.n_nulls,
        "pm25_min": result.value_min,
        "pm25_max": result.value_max,
    }
    atomic_write_json(report, config.validation_path())
    logger.info("[validate] run=%s rows=%s missing_pm25=%s", run_id, result.n_rows, result.n_nulls)
    return report


def fit_and_summarize(clean_path: str, config: PM25AnalysisConfig, run_id: str = "") -> Dict:
    """Fit every model on the full series, append residual columns, write summaries."""
    df = read_frame(clean_path)

    fitted = fit_models(
        df,
        config.models,
        regressors=config.regressors,
        model_params=config.model_params(),
    )
    with_residuals = add_residual_columns(df, fitted)
    summary_df = residual_summary(with_residuals)

    atomic_write_parquet(with_residuals, config.residuals_path())
    atomic_write_parquet(summary_df, config.residual_summary_path())
    skipped = sorted(set(config.models) - set(fitted))
    atomic_write_json(
        {
            "run_id": run_id,
            "fitted_at": _utc_iso(),
            "skipped_models": skipped,
            "models": model_summaries(fitted),
        },
        config.summaries_path(),
    )
    logger.info("[fit] run=%s fitted=%s skipped=%s", run_id, sorted(fitted), skipped)

    return {
        "residuals_path": str(config.residuals_path()),
        "residual_summary_path": str(config.residual_summary_path()),
        "summaries_path": str(config.summaries_path()),
        "fitted_models": sorted(fitted),
        "skipped_models": skipped,
    }


def cross_validate_models(clean_path: str, config: PM25AnalysisConfig, run_id: str = "") -> Dict:
    df = read_frame(clean_path)

    backtest = BacktestingStrategy(
        strategy=config.cv_strategy,
        initial=config.cv_initial_days,
        horizon=config.cv_horizon_days,
        period=config.cv_period_days,
        max_splits=config.cv_max_splits,
    )
    validator = CrossValidator(
        config.models,
        backtest,
        regressors=config.regressors,
        model_params=config.model_params(),
    )
    cv_df = validator.run(df)
    perf = performance_by_horizon(cv_df)
    board = leaderboard(cv_df)

    atomic_write_parquet(cv_df, config.cv_results_path())
    atomic_write_parquet(perf, config.performance_path())
    atomic_write_parquet(board, config.leaderboard_path())
    atomic_write_json(
        {
            "run_id": run_id,
            "cross_validated_at": _utc_iso(),
            "splits": backtest.serialize_splits(backtest.generate_splits(df)),
            "failures": validator.failures,
        },
        config.cv_metadata_path(),
    )

    logger.info(
        "[cv] run=%s cv_results=%s leaderboard=%s failures=%s",
        run_id,
        config.cv_results_path(),
        config.leaderboard_path(),
        len(validator.failures),
    )

    return {
        "cv_results_path": str(config.cv_results_path()),
        "performance_path": str(config.performance_path()),
        "leaderboard_path": str(config.leaderboard_path()),
        "cv_metadata_path": str(config.cv_metadata_path()),
        "cv_failures": len(validator.failures),
        "best_model": board.iloc[0]["model"] if not board.empty else None,
    }


def render_plots(
    residuals_path: str,
    cv_results_path: str,
    performance_path: str,
    leaderboard_path: str,
    config: PM25AnalysisConfig,
    run_id: str = "",
) -> List[str]:
    plots_dir = config.plots_dir()
    ensure_dir(plots_dir)

    df = read_frame(residuals_path)
    cv_df = read_frame(cv_results_path)
    perf = read_frame(performance_path)
    board = read_frame(leaderboard_path)

    paths = [
        plot_series(
            df,
            plots_dir / "pm25_series.png",
            inversion_col=config.inversion_col,
            fireworks_col=config.fireworks_col,
        ),
        plot_residuals(df, plots_dir / "residuals.png"),
        plot_residual_histograms(df, plots_dir / "residual_histograms.png"),
        plot_cv_error_by_horizon(perf, plots_dir / "cv_rmse_by_horizon.png"),
        plot_model_comparison(board, plots_dir / "cv_rmse_by_model.png"),
        plot_cv_forecasts(cv_df, df, plots_dir / "cv_forecasts.png"),
    ]
    logger.info("[plots] run=%s wrote %s figures to %s", run_id, len(paths), plots_dir)
    return [str(p) for p in paths]


def run_full_analysis(config: PM25AnalysisConfig) -> Dict:
    run_id = config.run_id()

    clean_path = prepare_data(config, run_id=run_id)
    validation = validate_data(clean_path, config, run_id=run_id)
    fit_info = fit_and_summarize(clean_path, config, run_id=run_id)
    cv_info = cross_validate_models(clean_path, config, run_id=run_id)
    plots = render_plots(
        residuals_path=fit_info["residuals_path"],
        cv_results_path=cv_info["cv_results_path"],
        performance_path=cv_info["performance_path"],
        leaderboard_path=cv_info["leaderboard_path"],
        config=config,
        run_id=run_id,
    )

    return {
        "run_id": run_id,
        "clean_data": clean_path,
        "validation": validation,
        "fitted_models": fit_info["fitted_models"],
        "skipped_models": fit_info["skipped_models"],
        "summaries": fit_info["summaries_path"],
        "residuals": fit_info["residuals_path"],
        "residual_summary": fit_info["residual_summary_path"],
        "cv_results": cv_info["cv_results_path"],
        "performance_by_horizon": cv_info["performance_path"],
        "leaderboard": cv_info["leaderboard_path"],
        "cv_metadata": cv_info["cv_metadata_path"],
        "cv_failures": cv_info["cv_failures"],
        "best_model": cv_info["best_model"],
        "plots": plots,
    }

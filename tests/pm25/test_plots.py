"""
Every figure is written as a non-empty PNG.
"""

import pandas as pd
import pytest

from src.pm25.backtesting import cross_validate, leaderboard, performance_by_horizon
from src.pm25.plots import (
    plot_cv_error_by_horizon,
    plot_cv_forecasts,
    plot_model_comparison,
    plot_residual_histograms,
    plot_residuals,
    plot_series,
)
from src.pm25.residuals import add_residual_columns, fit_models

REGRESSORS = ("inversion", "inversion_diff", "wind_speed", "precipitation", "fireworks")
FAST_PARAMS = {"random_forest": {"n_estimators": 20}}
PNG_MAGIC = b"\x89PNG"


def _is_png(path) -> bool:
    with open(path, "rb") as f:
        return f.read(4) == PNG_MAGIC


@pytest.fixture
def residual_df(prepared):
    fitted = fit_models(prepared, ["ols", "random_forest"], REGRESSORS, FAST_PARAMS)
    return add_residual_columns(prepared, fitted)


@pytest.fixture
def cv_df(prepared):
    return cross_validate(
        prepared,
        ["ols", "random_forest"],
        initial=200,
        horizon=7,
        period=60,
        regressors=REGRESSORS,
        model_params=FAST_PARAMS,
    )


@pytest.mark.smoke
class TestPlots:
    """PNG output for each figure"""

    def test_series(self, prepared, tmp_path):
        path = plot_series(prepared, tmp_path / "series.png")
        assert _is_png(path)

    def test_series_without_event_columns(self, prepared, tmp_path):
        path = plot_series(prepared[["ds", "y"]], tmp_path / "series.png")
        assert _is_png(path)

    def test_residuals(self, residual_df, tmp_path):
        assert _is_png(plot_residuals(residual_df, tmp_path / "residuals.png"))

    def test_residuals_subset(self, residual_df, tmp_path):
        assert _is_png(plot_residuals(residual_df, tmp_path / "ols.png", models=["ols"]))

    def test_residual_histograms(self, residual_df, tmp_path):
        assert _is_png(plot_residual_histograms(residual_df, tmp_path / "hist.png"))

    def test_cv_error_by_horizon(self, cv_df, tmp_path):
        path = plot_cv_error_by_horizon(performance_by_horizon(cv_df), tmp_path / "by_horizon.png")
        assert _is_png(path)

    def test_model_comparison(self, cv_df, tmp_path):
        assert _is_png(plot_model_comparison(leaderboard(cv_df), tmp_path / "board.png"))

    def test_cv_forecasts(self, cv_df, prepared, tmp_path):
        assert _is_png(plot_cv_forecasts(cv_df, prepared, tmp_path / "cv.png"))

    def test_creates_parent_dirs(self, prepared, tmp_path):
        path = plot_series(prepared, tmp_path / "nested" / "dir" / "series.png")
        assert path.exists()


@pytest.mark.fail_loud
class TestPlotsRejectEmptyInput:
    """Nothing to draw -> ValueError, not a blank figure"""

    def test_no_residual_columns(self, prepared, tmp_path):
        with pytest.raises(ValueError):
            plot_residuals(prepared, tmp_path / "r.png")

    def test_unknown_model_subset(self, residual_df, tmp_path):
        with pytest.raises(ValueError):
            plot_residuals(residual_df, tmp_path / "r.png", models=["prophet"])

    def test_empty_histograms(self, prepared, tmp_path):
        with pytest.raises(ValueError):
            plot_residual_histograms(prepared, tmp_path / "h.png")

    def test_empty_performance(self, tmp_path):
        with pytest.raises(ValueError):
            plot_cv_error_by_horizon(pd.DataFrame(columns=["model", "horizon", "rmse"]), tmp_path / "p.png")

    def test_empty_leaderboard(self, tmp_path):
        with pytest.raises(ValueError):
            plot_model_comparison(pd.DataFrame(columns=["model", "rmse_mean", "rmse_std"]), tmp_path / "b.png")

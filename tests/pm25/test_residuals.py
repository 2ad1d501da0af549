"""
In-sample fits and residual diagnostics.
"""

import numpy as np
import pandas as pd
import pytest

from src.pm25.models import ModelFactory
from src.pm25.residuals import (
    add_residual_columns,
    fit_models,
    model_summaries,
    residual_column,
    residual_columns,
    residual_summary,
)
from tests.pm25.test_backtesting import BrokenModel

REGRESSORS = ("inversion", "inversion_diff", "wind_speed", "precipitation", "fireworks")
FAST_PARAMS = {"random_forest": {"n_estimators": 20}}


@pytest.fixture
def fitted(prepared):
    return fit_models(prepared, ["ols", "random_forest"], REGRESSORS, FAST_PARAMS)


class TestFitModels:
    """Full-series fits, with failures skipped"""

    def test_all_requested_models_fitted(self, fitted):
        assert sorted(fitted) == ["ols", "random_forest"]
        assert all(model.is_fitted for model in fitted.values())

    @pytest.mark.fail_loud
    def test_failing_model_skipped(self, prepared, monkeypatch):
        monkeypatch.setitem(ModelFactory._models, "broken", BrokenModel)

        fitted = fit_models(prepared, ["broken", "ols"], REGRESSORS)

        assert list(fitted) == ["ols"]

    @pytest.mark.fail_loud
    def test_all_failing_raises(self, prepared, monkeypatch):
        monkeypatch.setitem(ModelFactory._models, "broken", BrokenModel)

        with pytest.raises(RuntimeError, match="No model"):
            fit_models(prepared, ["broken"], REGRESSORS)

    def test_unknown_model_skipped(self, prepared):
        fitted = fit_models(prepared, ["ols", "lstm"], REGRESSORS)
        assert list(fitted) == ["ols"]


class TestResidualColumns:
    """resid_<model> = observed - fitted"""

    def test_one_column_per_model(self, prepared, fitted):
        df = add_residual_columns(prepared, fitted)

        assert residual_columns(df) == {
            "ols": "resid_ols",
            "random_forest": "resid_random_forest",
        }
        assert list(prepared.columns) == ["ds", "y", *REGRESSORS]

    def test_residual_is_observed_minus_fitted(self, prepared, fitted):
        df = add_residual_columns(prepared, fitted)

        expected = prepared["y"].to_numpy() - fitted["ols"].fitted()
        np.testing.assert_allclose(df[residual_column("ols")].to_numpy(), expected)

    def test_missing_target_gives_missing_residual(self, prepared, fitted):
        df = add_residual_columns(prepared, fitted)

        missing = prepared["y"].isna()
        assert missing.any()
        assert df.loc[missing, "resid_ols"].isna().all()
        assert df.loc[~missing, "resid_ols"].notna().all()

    @pytest.mark.fail_loud
    def test_length_mismatch_raises(self, prepared, fitted):
        with pytest.raises(ValueError, match="fitted values"):
            add_residual_columns(prepared.iloc[:-5], fitted)


class TestResidualSummary:
    """Per-model diagnostics table"""

    def test_columns_and_sorting(self, prepared, fitted):
        summary = residual_summary(add_residual_columns(prepared, fitted))

        assert list(summary.columns) == ["model", "rmse", "bias", "std", "lag1_autocorr", "ljung_box_pvalue", "n"]
        assert summary["rmse"].is_monotonic_increasing
        assert (summary["n"] == prepared["y"].notna().sum()).all()

    def test_ols_residuals_centered(self, prepared, fitted):
        summary = residual_summary(add_residual_columns(prepared, fitted)).set_index("model")

        # OLS with an intercept has mean-zero residuals on the fitted rows
        assert summary.loc["ols", "bias"] == pytest.approx(0.0, abs=1e-8)
        assert 0.0 <= summary.loc["ols", "ljung_box_pvalue"] <= 1.0

    def test_known_residuals(self):
        df = pd.DataFrame({
            "ds": pd.date_range("2020-01-01", periods=4, freq="D"),
            "y": [1.0, 2.0, 3.0, np.nan],
            "resid_flat": [1.0, -1.0, 1.0, np.nan],
        })

        row = residual_summary(df).iloc[0]

        assert row["model"] == "flat"
        assert row["rmse"] == pytest.approx(1.0)
        assert row["bias"] == pytest.approx(1 / 3)
        assert row["n"] == 3
        assert np.isnan(row["ljung_box_pvalue"])

    def test_model_summaries_text(self, fitted):
        summaries = model_summaries(fitted)

        assert "OLS Regression Results" in summaries["ols"]
        assert "Feature importance" in summaries["random_forest"]

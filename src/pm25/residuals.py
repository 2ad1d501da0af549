"""
In-sample fits, residual columns and residual diagnostics.

Residual = observed - fitted. Days with missing PM2.5 get a NaN residual even
for models that interpolated the target to fit.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .evaluation import ForecastMetrics
from .models import ForecastModel, ModelFactory

logger = logging.getLogger(__name__)

RESIDUAL_PREFIX = "resid_"


def residual_column(model_name: str) -> str:
    return f"{RESIDUAL_PREFIX}{model_name}"


def fit_models(
    df: pd.DataFrame,
    model_names: Sequence[str],
    regressors: Sequence[str] = (),
    model_params: Optional[Mapping[str, dict]] = None,
) -> Dict[str, ForecastModel]:
    """
    Fit each model on the full prepared frame.

    A model that fails is logged and left out; RuntimeError if none fit.
    """
    model_params = model_params or {}
    fitted: Dict[str, ForecastModel] = {}

    for name in model_names:
        try:
            model = ModelFactory.create(name, regressors=regressors, **model_params.get(name, {}))
            fitted[name] = model.fit(df)
            logger.info("[fit] %s fitted on %s days", name, len(df))
        except Exception as e:
            logger.warning("[fit] %s failed: %s", name, e)

    if not fitted:
        raise RuntimeError(f"No model could be fitted (tried: {list(model_names)})")
    return fitted


def add_residual_columns(df: pd.DataFrame, fitted: Mapping[str, ForecastModel]) -> pd.DataFrame:
    """
    Append one resid_<model> column per fitted model.
    """
    out = df.copy()
    observed = out["y"].to_numpy(dtype=float)

    for name, model in fitted.items():
        fitted_values = np.asarray(model.fitted(), dtype=float)
        if len(fitted_values) != len(out):
            raise ValueError(
                f"{name}: {len(fitted_values)} fitted values for {len(out)} rows"
            )
        out[residual_column(name)] = observed - fitted_values

    return out


def residual_columns(df: pd.DataFrame) -> Dict[str, str]:
    """{model_name: column} for the residual columns present in df"""
    return {
        col[len(RESIDUAL_PREFIX):]: col
        for col in df.columns
        if col.startswith(RESIDUAL_PREFIX)
    }


def residual_summary(df: pd.DataFrame, ljung_box_lags: int = 7) -> pd.DataFrame:
    """
    Diagnostics per residual column.

    - rmse / bias / std of in-sample residuals
    - lag-1 autocorrelation
    - Ljung-Box p-value (small = residuals still autocorrelated)
    """
    from statsmodels.stats.diagnostic import acorr_ljungbox

    rows = []
    for model, col in residual_columns(df).items():
        resid = df[col].dropna()
        row = {
            "model": model,
            "rmse": ForecastMetrics.rmse(np.zeros(len(resid)), resid.to_numpy()),
            "bias": float(resid.mean()) if len(resid) else np.nan,
            "std": float(resid.std()) if len(resid) > 1 else np.nan,
            "lag1_autocorr": float(resid.autocorr(lag=1)) if len(resid) > 2 else np.nan,
            "ljung_box_pvalue": np.nan,
            "n": int(len(resid)),
        }
        if len(resid) > ljung_box_lags + 1:
            lb = acorr_ljungbox(resid.to_numpy(), lags=[ljung_box_lags], return_df=True)
            row["ljung_box_pvalue"] = float(lb["lb_pvalue"].iloc[0])
        rows.append(row)

    summary = pd.DataFrame(rows, columns=["model", "rmse", "bias", "std", "lag1_autocorr", "ljung_box_pvalue", "n"])
    return summary.sort_values("rmse").reset_index(drop=True)


def model_summaries(fitted: Mapping[str, ForecastModel]) -> Dict[str, str]:
    """{model_name: summary text}; a failing summary is reported, not raised"""
    summaries = {}
    for name, model in fitted.items():
        try:
            summaries[name] = model.summary()
        except Exception as e:
            logger.warning("[fit] summary for %s failed: %s", name, e)
            summaries[name] = f"summary unavailable: {e}"
    return summaries

# file: src/pm25/plots.py
"""
Figures for the model comparison.

1. PM2.5 series with inversion and fireworks days marked
2. Residuals over time, one panel per model
3. Residual histograms
4. Cross-validated RMSE by horizon, one line per model
5. Mean cross-validated RMSE by model
6. Actual vs cross-validated forecasts

Every function writes a PNG and returns its path.
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402

from .residuals import residual_columns  # noqa: E402

logger = logging.getLogger(__name__)

warnings.filterwarnings("ignore", category=UserWarning, module="matplotlib")

plt.rcParams["figure.figsize"] = (12, 6)
plt.rcParams["figure.dpi"] = 100


def _save(fig, output_path: Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(output_path, dpi=150, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    logger.info("[plots] wrote %s", output_path)
    return output_path


def _panel_axes(n: int, height: float = 2.5, sharex: bool = True):
    fig, axes = plt.subplots(n, 1, figsize=(12, height * n), sharex=sharex, squeeze=False)
    return fig, axes[:, 0]


def plot_series(
    df: pd.DataFrame,
    output_path: Path,
    inversion_col: Optional[str] = "inversion",
    fireworks_col: Optional[str] = "fireworks",
) -> Path:
    """PM2.5 over time; inversion days shaded, fireworks days marked."""
    fig, ax = plt.subplots(figsize=(14, 5))
    ax.plot(df["ds"], df["y"], color="black", linewidth=0.8, label="PM2.5")

    if inversion_col and inversion_col in df.columns:
        ax.fill_between(
            df["ds"],
            0,
            1,
            where=(df[inversion_col] > 0).to_numpy(),
            step="post",
            transform=ax.get_xaxis_transform(),
            color="tab:blue",
            alpha=0.12,
            linewidth=0,
            label="Inversion",
        )

    if fireworks_col and fireworks_col in df.columns:
        fw = df[df[fireworks_col] > 0]
        if not fw.empty:
            ax.scatter(fw["ds"], fw["y"], color="tab:red", marker="*", s=80, zorder=3, label="Fireworks")

    n_missing = int(df["y"].isna().sum())
    ax.set_title(f"Daily PM2.5 ({n_missing} missing days)")
    ax.set_xlabel("Date")
    ax.set_ylabel("PM2.5 (µg/m³)")
    ax.legend(loc="upper right")
    ax.grid(True, alpha=0.3)
    return _save(fig, output_path)


def plot_residuals(
    df: pd.DataFrame,
    output_path: Path,
    models: Optional[Sequence[str]] = None,
) -> Path:
    """Residual time series per model with a zero line and residual RMSE."""
    columns = residual_columns(df)
    if models is not None:
        columns = {m: c for m, c in columns.items() if m in models}
    if not columns:
        raise ValueError("No residual columns to plot")

    fig, axes = _panel_axes(len(columns))
    for ax, (model, col) in zip(axes, columns.items()):
        resid = df[col]
        rmse = float(np.sqrt(np.nanmean(resid.to_numpy(dtype=float) ** 2)))
        ax.plot(df["ds"], resid, linewidth=0.7)
        ax.axhline(0, color="red", linestyle="--", linewidth=0.8)
        ax.set_title(f"{model} residuals (RMSE {rmse:.2f})", fontsize=10)
        ax.set_ylabel("Observed - fitted")
        ax.grid(True, alpha=0.3)
    axes[-1].set_xlabel("Date")
    return _save(fig, output_path)


def plot_residual_histograms(df: pd.DataFrame, output_path: Path, bins: int = 40) -> Path:
    columns = residual_columns(df)
    if not columns:
        raise ValueError("No residual columns to plot")

    n = len(columns)
    ncols = min(3, n)
    nrows = int(np.ceil(n / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(4.5 * ncols, 3.5 * nrows), squeeze=False)

    for ax, (model, col) in zip(axes.ravel(), columns.items()):
        resid = df[col].dropna()
        ax.hist(resid, bins=bins, color="tab:gray", edgecolor="white")
        ax.axvline(0, color="red", linestyle="--", linewidth=0.8)
        ax.set_title(f"{model} (mean {resid.mean():.2f})", fontsize=10)
    for ax in axes.ravel()[n:]:
        ax.set_visible(False)

    return _save(fig, output_path)


def plot_cv_error_by_horizon(perf: pd.DataFrame, output_path: Path, metric: str = "rmse") -> Path:
    """Cross-validated error vs days after cutoff, one line per model."""
    if perf.empty:
        raise ValueError("Empty performance table")

    fig, ax = plt.subplots(figsize=(10, 6))
    for model, group in perf.groupby("model"):
        group = group.sort_values("horizon")
        ax.plot(group["horizon"], group[metric], marker="o", label=model)

    ax.set_title(f"Cross-validated {metric.upper()} by horizon")
    ax.set_xlabel("Horizon (days after cutoff)")
    ax.set_ylabel(metric.upper())
    ax.legend()
    ax.grid(True, alpha=0.3)
    return _save(fig, output_path)


def plot_model_comparison(board: pd.DataFrame, output_path: Path) -> Path:
    """Mean cross-validated RMSE per model (± std across cutoffs)."""
    if board.empty:
        raise ValueError("Empty leaderboard")

    board = board.sort_values("rmse_mean")
    fig, ax = plt.subplots(figsize=(10, 5))
    ax.bar(
        board["model"],
        board["rmse_mean"],
        yerr=board["rmse_std"].fillna(0.0),
        capsize=4,
        color="tab:blue",
        alpha=0.8,
    )
    for x, value in enumerate(board["rmse_mean"]):
        ax.text(x, value, f"{value:.2f}", ha="center", va="bottom", fontsize=9)

    ax.set_title("Cross-validated RMSE by model (lower is better)")
    ax.set_ylabel("RMSE")
    ax.grid(True, axis="y", alpha=0.3)
    return _save(fig, output_path)


def plot_cv_forecasts(cv_df: pd.DataFrame, actual: pd.DataFrame, output_path: Path) -> Path:
    """Actual PM2.5 with each model's cross-validated forecasts overlaid."""
    models = sorted(cv_df["model"].unique())
    if not models:
        raise ValueError("Empty cross-validation results")

    start = cv_df["ds"].min() - pd.Timedelta(days=30)
    window = actual[actual["ds"] >= start]

    fig, axes = _panel_axes(len(models), height=3.0)
    for ax, model in zip(axes, models):
        ax.plot(window["ds"], window["y"], color="black", linewidth=0.8, label="Actual")
        for cutoff, group in cv_df[cv_df["model"] == model].groupby("cutoff"):
            ax.plot(group["ds"], group["yhat"], color="tab:orange", linewidth=1.2)
            ax.axvline(cutoff, color="gray", linestyle=":", linewidth=0.6)
        ax.plot([], [], color="tab:orange", label="CV forecast")
        ax.set_title(model, fontsize=10)
        ax.legend(loc="upper right")
        ax.grid(True, alpha=0.3)
    axes[-1].set_xlabel("Date")
    return _save(fig, output_path)

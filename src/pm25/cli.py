from __future__ import annotations

import logging
import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import load_config
from .dataset import load_dataset, prepare_dataset, validate_daily_index
from .models import ModelFactory
from .tasks import run_full_analysis

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
app = typer.Typer(add_completion=False, help="Fit and compare PM2.5 forecasting models.")
console = Console()


def _strip_ipykernel_args(argv: list[str]) -> list[str]:
    """Jupyter/ipykernel injects `-f <connection_file>` into sys.argv."""
    out = [argv[0]]
    i = 1
    while i < len(argv):
        a = argv[i]
        if a in ("-f", "--f"):
            i += 2
            continue
        if a.startswith("--f="):
            i += 1
            continue
        out.append(a)
        i += 1
    return out


def _print_results(title: str, results: dict) -> None:
    table = Table(title=title)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    for k, v in results.items():
        if isinstance(v, (list, tuple)):
            v = "\n".join(str(item) for item in v)
        table.add_row(str(k), str(v))

    console.print(table)


@app.command()
def run(
    data_path: Optional[str] = typer.Option(None, help="Pre-serialized table (.pkl, .parquet, .csv)"),
    models: Optional[List[str]] = typer.Option(None, "--model", "-m", help="Model to include (repeatable)"),
    cv_strategy: str = "expanding",
    initial_days: int = 365,
    period_days: int = 30,
    horizon_days: int = 14,
    max_splits: Optional[int] = None,
    data_dir: Optional[str] = None,
    artifacts_dir: Optional[str] = None,
    reports_dir: Optional[str] = None,
    overwrite: bool = False,
):
    """Fit all models, compute residuals, cross-validate and plot."""
    cfg = load_config(
        data_path=data_path,
        models=tuple(models) if models else None,
        cv_strategy=cv_strategy,
        cv_initial_days=initial_days,
        cv_period_days=period_days,
        cv_horizon_days=horizon_days,
        cv_max_splits=max_splits,
        data_dir=data_dir,
        artifacts_dir=artifacts_dir,
        reports_dir=reports_dir,
        overwrite=overwrite,
    )

    unknown = sorted(set(cfg.models) - set(ModelFactory.list_models()))
    if unknown:
        raise typer.BadParameter(f"Unknown model(s): {unknown}. Available: {ModelFactory.list_models()}")

    results = run_full_analysis(cfg)
    _print_results("PM2.5 Model Comparison", results)


@app.command()
def validate(
    data_path: Optional[str] = typer.Option(None, help="Pre-serialized table (.pkl, .parquet, .csv)"),
):
    """Load and prepare the table, then report daily-index integrity."""
    cfg = load_config(data_path=data_path)
    raw = load_dataset(cfg.data_path_obj())
    df = prepare_dataset(raw, cfg)
    result = validate_daily_index(df)

    _print_results(
        "PM2.5 Dataset",
        {
            "rows (raw)": len(raw),
            "rows (daily grid)": result.n_rows,
            "days added to grid": result.n_rows - len(raw),
            "missing PM2.5": result.n_nulls,
            "PM2.5 range": f"{result.value_min:.1f} to {result.value_max:.1f}",
            "valid": result.is_valid,
        },
    )


@app.command("list-models")
def list_models():
    """Show the available model names."""
    for name in ModelFactory.list_models():
        console.print(name)


if __name__ == "__main__":
    sys.argv = _strip_ipykernel_args(sys.argv)
    app(standalone_mode=False)

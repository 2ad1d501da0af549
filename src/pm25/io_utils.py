# file: src/pm25/io_utils.py
"""
Artifact IO for the analysis steps.

Every artifact is written to `<name>.tmp` next to the target and then moved
into place, so a failed step never leaves a half-written parquet/json behind.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Union

import numpy as np
import pandas as pd

PathLike = Union[str, Path]


def ensure_dir(path: PathLike) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


@contextmanager
def _replace_on_success(path: PathLike) -> Iterator[Path]:
    path = Path(path)
    ensure_dir(path.parent)
    tmp = path.with_name(path.name + ".tmp")
    try:
        yield tmp
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()


def _json_default(value: Any):
    # numpy scalars and timestamps show up in metadata / summaries
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return None if np.isnan(value) else float(value)
    if isinstance(value, (pd.Timestamp, np.datetime64)):
        return pd.Timestamp(value).isoformat()
    return str(value)


def atomic_write_parquet(df: pd.DataFrame, path: PathLike) -> Path:
    with _replace_on_success(path) as tmp:
        df.to_parquet(tmp, index=False)
    return Path(path)


def atomic_write_json(payload: Dict[str, Any], path: PathLike) -> Path:
    with _replace_on_success(path) as tmp:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, default=_json_default)
    return Path(path)


def read_frame(path: PathLike) -> pd.DataFrame:
    """Read a parquet artifact written by a previous step."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Artifact not found: {path}. Run the earlier steps first.")
    return pd.read_parquet(path)

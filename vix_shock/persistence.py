"""
Artifact persistence.

Every artifact is written to a temporary file next to its destination
and moved into place with os.replace, so a failed write never leaves a
partial file behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import pandas as pd

from vix_shock.regression import RegressionResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@contextmanager
def atomic_path(path: PathLike) -> Iterator[Path]:
    """
    Yield a temporary path that replaces `path` when the block succeeds.

    The temporary file is removed if the block raises.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    os.close(fd)
    tmp = Path(tmp_name)
    try:
        yield tmp
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def write_parquet(df: pd.DataFrame, path: PathLike) -> Path:
    """Atomically save a DataFrame to Parquet."""
    target = Path(path)
    with atomic_path(target) as tmp:
        df.to_parquet(tmp, compression="snappy", index=False)
    logger.info(f"Saved: {target} ({len(df):,} rows)")
    return target


def read_parquet(path: PathLike) -> pd.DataFrame:
    return pd.read_parquet(Path(path))


def write_json(payload: Dict[str, Any], path: PathLike) -> Path:
    """Atomically save a JSON document."""
    target = Path(path)
    with atomic_path(target) as tmp:
        tmp.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    logger.info(f"Saved: {target}")
    return target


def read_json(path: PathLike) -> Dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def save_result(result: RegressionResult, path: PathLike) -> Path:
    """Persist a fitted regression (coefficients + metadata, no draws)."""
    return write_json(result.to_dict(), path)


def load_result(path: PathLike) -> RegressionResult:
    """Reload a regression saved with save_result."""
    return RegressionResult.from_dict(read_json(path))


def rounded(df: pd.DataFrame, decimals: Optional[int]) -> pd.DataFrame:
    """Copy of df with float columns rounded (None = unchanged)."""
    if decimals is None:
        return df.copy()
    return df.round(decimals)

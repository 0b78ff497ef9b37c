from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from ..errors import DestinationExistsError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_FORMATS = {
    ".csv": "csv",
    ".parquet": "parquet",
    ".pq": "parquet",
    ".jsonl": "jsonl",
    ".json": "jsonl",
}


def table_format(path: PathLike) -> str:
    suffix = Path(path).suffix.lower()
    if suffix not in _FORMATS:
        raise ValueError(f"Unsupported file format for {path}; use csv, parquet or jsonl")
    return _FORMATS[suffix]


def read_table(path: PathLike, *, parse_dates: Optional[list] = None) -> pd.DataFrame:
    """Read parquet, CSV or JSON-lines depending on extension."""
    fmt = table_format(path)
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    if fmt == "parquet":
        df = pd.read_parquet(path)
    elif fmt == "csv":
        df = pd.read_csv(path)
    else:
        df = pd.read_json(path, lines=True, convert_dates=False)
    for col in parse_dates or []:
        df = ensure_datetime(df, col)
    logger.info("Read %d rows from %s", len(df), path)
    return df


def ensure_datetime(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Parse a string column into datetimes.

    Numeric and already-datetime columns are returned as is, and no timezone
    conversion is applied.
    """
    if col not in df.columns:
        return df
    series = df[col]
    if pd.api.types.is_datetime64_any_dtype(series) or pd.api.types.is_numeric_dtype(series):
        return df
    out = df.copy()
    out[col] = pd.to_datetime(series)
    return out


def _write(df: pd.DataFrame, path: Path, fmt: str) -> None:
    if fmt == "parquet":
        df.to_parquet(path, index=False)
    elif fmt == "csv":
        df.to_csv(path, index=False)
    else:
        df.to_json(path, orient="records", lines=True, date_format="iso")


def write_table(df: pd.DataFrame, path: PathLike) -> str:
    """Write ``df`` to a destination that must not exist yet.

    The frame is written to a temporary sibling first and moved into place
    only once complete, so a failed write leaves no destination behind.
    """
    fmt = table_format(path)
    path = Path(path)
    if path.exists():
        raise DestinationExistsError(f"Destination {path} already exists")
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    os.close(fd)
    tmp = Path(tmp_name)
    try:
        _write(df, tmp, fmt)
        if path.exists():
            raise DestinationExistsError(f"Destination {path} appeared while writing")
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()
    logger.info("Wrote %d rows to %s", len(df), path)
    return str(path)

"""Table-to-table sessionization: the callable behind the CLI."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import pandas as pd

from common.timer import StageTimer

from .config import SessionConfig
from .core import sessionize_records
from .dataio import read_table, table_format, write_table
from .errors import DestinationExistsError, SchemaError
from .frame import require_columns, check_sessions, sessionize_frame
from .summary import summarize_sessions

logger = logging.getLogger(__name__)

USAGE = """\
sessionize: split identifier-tagged events into gap-based sessions.

  sessionize_table(source, destination, identifier_column, timestamp_column, gap_threshold)

Reads SOURCE (csv, parquet or jsonl), groups rows by IDENTIFIER_COLUMN, orders
each group by TIMESTAMP_COLUMN and starts a new session whenever consecutive
timestamps are more than GAP_THRESHOLD apart. Writes every input row to
DESTINATION with two extra columns:

  is_session_start  true on the first row of each session
  session_no        zero-based session number per identifier

GAP_THRESHOLD is a duration such as "30min", "00:10:00" or a plain number for
numeric timestamps. DESTINATION must not exist; nothing is written on error.
"""


def usage() -> str:
    return USAGE


def sessionize_table(
    source: Union[str, Path],
    destination: Union[str, Path],
    identifier_column: str,
    timestamp_column: str,
    gap_threshold: Any,
    *,
    tie_break: Union[str, Sequence[str]] = (),
    parse_dates: bool = True,
    summary_path: Optional[Union[str, Path]] = None,
    workers: int = 1,
    check: bool = False,
    config: Optional[SessionConfig] = None,
    cancel: Optional[threading.Event] = None,
) -> None:
    """Sessionize ``source`` into ``destination``.

    ``config`` (when given) supplies output column names; the explicit
    arguments always win for the selectors and the gap.
    """
    base = config or SessionConfig()
    cfg = base.replace(
        identifier_field=identifier_column,
        timestamp_field=timestamp_column,
        gap_threshold=gap_threshold,
        tie_break=tie_break,
        workers=workers,
    )
    destination = Path(destination)
    # fail before reading anything
    table_format(destination)
    if destination.exists():
        raise DestinationExistsError(f"Destination {destination} already exists")
    if summary_path is not None:
        table_format(summary_path)
        if Path(summary_path).exists():
            raise DestinationExistsError(f"Destination {summary_path} already exists")

    timer = StageTimer()
    with timer.stage("read"):
        df = read_table(source, parse_dates=[timestamp_column] if parse_dates else None)

    with timer.stage("sessionize"):
        if cfg.workers > 1:
            out = _sessionize_by_records(df, cfg, cancel)
        else:
            out = sessionize_frame(df, cfg)
        if check:
            check_sessions(out, cfg)
        summary = summarize_sessions(out, cfg) if summary_path is not None else None

    with timer.stage("write"):
        write_table(out, destination)
        if summary is not None:
            try:
                write_table(summary, summary_path)
            except BaseException:
                destination.unlink()
                raise
    logger.info("Done: %s -> %s (%s)", source, destination, timer.summary())


def _sessionize_by_records(df: pd.DataFrame, cfg: SessionConfig, cancel) -> pd.DataFrame:
    require_columns(df, [cfg.identifier_field, *cfg.sort_fields])
    for name in (cfg.start_field, cfg.session_field):
        if name in df.columns:
            raise SchemaError(f"Output column {name!r} already exists on the input", field=name)
    records = df.to_dict(orient="records")
    out = pd.DataFrame.from_records(
        sessionize_records(records, cfg, cancel=cancel),
        columns=[*df.columns, cfg.start_field, cfg.session_field],
    )
    return out


__all__ = ["sessionize_table", "usage", "USAGE"]

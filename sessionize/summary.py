from __future__ import annotations

import logging

import pandas as pd

from .config import SessionConfig
from .errors import SchemaError

logger = logging.getLogger(__name__)


def summarize_sessions(sessions: pd.DataFrame, config: SessionConfig) -> pd.DataFrame:
    """Collapse a sessionized frame to one row per ``(identifier, session_no)``.

    Columns: identifier, session number, ``start``, ``end``, ``n_events`` and
    ``duration`` (``end - start``, zero for single-event sessions).
    """
    id_col, ts_col, sess_col = config.identifier_field, config.timestamp_field, config.session_field
    missing = [c for c in (id_col, ts_col, sess_col) if c not in sessions.columns]
    if missing:
        raise SchemaError(f"Cannot summarize, missing columns {missing}", field=missing[0])

    g = sessions.groupby([id_col, sess_col], sort=False, dropna=False)
    summary = (
        g.agg(start=(ts_col, "min"), end=(ts_col, "max"), n_events=(ts_col, "size"))
        .reset_index()
    )
    summary["duration"] = summary["end"] - summary["start"]
    summary["n_events"] = summary["n_events"].astype("int64")
    logger.info("Summarized %d sessions", len(summary))
    return summary


__all__ = ["summarize_sessions"]

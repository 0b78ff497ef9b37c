from __future__ import annotations

import logging
from typing import Iterable

import numpy as np
import pandas as pd

from .config import SessionConfig
from .core import check_gap_type, session_numbers
from .errors import NullTimestampError, SchemaError, ValidationError

logger = logging.getLogger(__name__)


def require_columns(df: pd.DataFrame, cols: Iterable) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise SchemaError(f"Missing required columns {missing}; available: {list(df.columns)}", field=missing[0])


def _check_nulls(df: pd.DataFrame, config: SessionConfig) -> None:
    mask = df[config.timestamp_field].isna().to_numpy()
    if not mask.any():
        return
    positions = np.flatnonzero(mask)
    idents = pd.unique(df[config.identifier_field].to_numpy()[positions])
    raise NullTimestampError(
        f"{len(positions)} rows have a null {config.timestamp_field!r} "
        f"(first rows {positions[:5].tolist()}, identifiers {list(idents[:5])})",
        identifiers=idents,
        positions=positions,
    )


def _exceeds(ts: pd.Series, first: np.ndarray, gap) -> np.ndarray:
    """``ts[i] - ts[i-1] > gap`` within a group; False on each group's first row."""
    out = np.zeros(len(ts), dtype=bool)
    if len(ts) < 2:
        return out
    vectorised = (
        pd.api.types.is_datetime64_any_dtype(ts)
        or pd.api.types.is_timedelta64_dtype(ts)
        or pd.api.types.is_numeric_dtype(ts)
    )
    try:
        if vectorised:
            out = (ts.diff() > gap).to_numpy(dtype=bool)
        else:
            vals = ts.to_numpy()
            for i in np.flatnonzero(~first):
                out[i] = bool(vals[i] - vals[i - 1] > gap)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"timestamp differences of dtype {ts.dtype} are not comparable with gap threshold {gap!r}"
        ) from exc
    return out & ~first


def sessionize_frame(df: pd.DataFrame, config: SessionConfig) -> pd.DataFrame:
    """Vectorised sessionization of a DataFrame.

    Output rows are ordered by identifier first appearance, then timestamp
    (ties keep input order unless ``tie_break`` columns are configured).
    The index is reset; the input frame is left untouched.
    """
    id_col, ts_col = config.identifier_field, config.timestamp_field
    require_columns(df, [id_col, *config.sort_fields])
    for name in (config.start_field, config.session_field):
        if name in df.columns:
            raise SchemaError(f"Output column {name!r} already exists on the input", field=name)
    _check_nulls(df, config)

    work = df.reset_index(drop=True)
    if len(work):
        check_gap_type(work[ts_col].iloc[0], config.gap_threshold)
    codes, _ = pd.factorize(work[id_col], use_na_sentinel=False)
    try:
        pos = work.sort_values(list(config.sort_fields), kind="mergesort").index.to_numpy()
    except TypeError as exc:
        raise SchemaError(f"Column {ts_col!r} is not orderable: {exc}", field=ts_col) from exc
    # stable regroup: by first appearance, keeping the timestamp order inside
    pos = pos[np.argsort(codes[pos], kind="stable")]
    out = work.take(pos).reset_index(drop=True)
    grp = codes[pos]

    first = np.ones(len(out), dtype=bool)
    first[1:] = grp[1:] != grp[:-1]
    starts = first | _exceeds(out[ts_col], first, config.gap_threshold)

    out[config.start_field] = starts
    out[config.session_field] = (
        pd.Series(starts.astype(np.int64)).groupby(grp, sort=False).cumsum().to_numpy() - 1
    )
    logger.info(
        "Sessionized %d rows into %d sessions across %d groups",
        len(out), int(starts.sum()), len(np.unique(grp)),
    )
    return out


def check_sessions(df: pd.DataFrame, config: SessionConfig) -> None:
    """Raise ``AssertionError`` if a sessionized frame breaks the invariants."""
    require_columns(df, [config.identifier_field, *config.sort_fields, config.start_field, config.session_field])
    gap = config.gap_threshold
    for key, g in df.groupby(config.identifier_field, sort=False, dropna=False):
        g = g.sort_values(list(config.sort_fields), kind="mergesort")
        ts = g[config.timestamp_field].tolist()
        starts = g[config.start_field].astype(bool).tolist()
        numbers = g[config.session_field].astype(np.int64).tolist()
        if not starts[0] or numbers[0] != 0:
            raise AssertionError(f"group {key!r}: first row must start session 0")
        for i in range(1, len(ts)):
            expected = bool(ts[i] - ts[i - 1] > gap)
            if starts[i] != expected:
                raise AssertionError(
                    f"group {key!r}: row {i} start flag {starts[i]} but gap {ts[i] - ts[i - 1]!r} vs {gap!r}"
                )
        if session_numbers(starts).tolist() != numbers:
            raise AssertionError(f"group {key!r}: session numbers are not the running count of starts")


__all__ = ["sessionize_frame", "check_sessions", "require_columns"]

"""Gap-based sessionization over plain Python rows.

Rows are grouped by identifier, each group is ordered by timestamp and scanned
once with a cursor on the previous timestamp. A row starts a session when it
is the first of its group or when it trails the previous row by more than the
gap threshold; session numbers are the running count of starts, zero-based.
"""
from __future__ import annotations

import datetime as dt
import logging
import numbers
import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, List, NamedTuple, Optional

import numpy as np
import pandas as pd

from .config import SessionConfig
from .errors import NullTimestampError, SchemaError, SessionizeCancelled, ValidationError

logger = logging.getLogger(__name__)

# every null identifier (None, NaN, NaT) lands in this one group
_NULL_KEY = ("<null identifier>",)


class AugmentedRow(NamedTuple):
    row: Any
    is_session_start: bool
    session_no: int


@dataclass
class _Event:
    position: int
    row: Any
    ts: Any
    extra: tuple


def is_null(value: Any) -> bool:
    if value is None:
        return True
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def resolve_field(row: Any, field: Any, position: int) -> Any:
    """Read ``field`` from a mapping, a sequence (int field) or an object."""
    try:
        if isinstance(row, Mapping):
            return row[field]
        if isinstance(field, int) and isinstance(row, Sequence) and not isinstance(row, (str, bytes)):
            return row[field]
        return getattr(row, field)
    except (KeyError, IndexError, AttributeError, TypeError) as exc:
        raise SchemaError(
            f"field {field!r} does not resolve on row {position} ({type(row).__name__})",
            field=field,
            position=position,
        ) from exc


def session_numbers(starts: Iterable[bool]) -> np.ndarray:
    """Inclusive prefix sum of session starts, zero-based."""
    flags = np.fromiter((bool(s) for s in starts), dtype=bool)
    return np.cumsum(flags, dtype=np.int64) - 1


def check_gap_type(ts: Any, gap: Any) -> None:
    """Reject a gap that can never be compared with differences of ``ts``.

    Dates, datetimes and durations need a ``pd.Timedelta`` gap, plain numbers
    need a numeric one. Other timestamp types are only checked when two of
    them are actually compared.
    """
    temporal = isinstance(ts, (dt.date, dt.timedelta, np.datetime64, np.timedelta64))
    numeric = isinstance(ts, numbers.Number) and not isinstance(ts, bool)
    if (temporal and not isinstance(gap, pd.Timedelta)) or (numeric and isinstance(gap, pd.Timedelta)):
        raise ValidationError(
            f"timestamps of type {type(ts).__name__} do not match gap threshold {gap!r}"
        )


def _group_key(ident: Any, position: int) -> Hashable:
    if is_null(ident):
        return _NULL_KEY
    try:
        hash(ident)
    except TypeError as exc:
        raise SchemaError(
            f"identifier on row {position} is not hashable: {ident!r}", position=position
        ) from exc
    return ident


def _partition(rows: Iterable[Any], config: SessionConfig) -> Dict[Hashable, List[_Event]]:
    groups: Dict[Hashable, List[_Event]] = {}
    for pos, row in enumerate(rows):
        ident = resolve_field(row, config.identifier_field, pos)
        ts = resolve_field(row, config.timestamp_field, pos)
        if is_null(ts):
            raise NullTimestampError(
                f"row {pos} (identifier {ident!r}) has a null {config.timestamp_field!r}",
                identifiers=[ident],
                positions=[pos],
            )
        extra = tuple(resolve_field(row, sel, pos) for sel in config.tie_break)
        groups.setdefault(_group_key(ident, pos), []).append(_Event(pos, row, ts, extra))
    return groups


def _scan_group(key: Hashable, events: List[_Event], gap: Any) -> List[AugmentedRow]:
    try:
        ordered = sorted(events, key=lambda e: (e.ts, *e.extra))
    except TypeError as exc:
        raise SchemaError(f"timestamps of group {key!r} are not mutually orderable: {exc}") from exc

    out: List[AugmentedRow] = []
    counter = -1
    prev = None
    for i, event in enumerate(ordered):
        if i == 0:
            start = True
        else:
            try:
                start = bool(event.ts - prev > gap)
            except TypeError as exc:
                raise ValidationError(
                    f"difference of {event.ts!r} and {prev!r} (group {key!r}, row {event.position}) "
                    f"is not comparable with gap threshold {gap!r}"
                ) from exc
        if start:
            counter += 1
        out.append(AugmentedRow(event.row, start, counter))
        prev = event.ts
    return out


def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise SessionizeCancelled("sessionization cancelled")


def _scan_group_checked(key, events, gap, cancel) -> List[AugmentedRow]:
    _check_cancel(cancel)
    return _scan_group(key, events, gap)


def _scan_parallel(groups, config: SessionConfig, cancel) -> List[List[AugmentedRow]]:
    with ThreadPoolExecutor(max_workers=config.workers, thread_name_prefix="sessionize") as pool:
        futures = [
            pool.submit(_scan_group_checked, key, events, config.gap_threshold, cancel)
            for key, events in groups.items()
        ]
        try:
            return [f.result() for f in futures]
        except BaseException:
            for f in futures:
                f.cancel()
            raise


def sessionize(
    rows: Iterable[Any],
    config: SessionConfig,
    *,
    cancel: Optional[threading.Event] = None,
) -> List[AugmentedRow]:
    """Label every row with its session start flag and session number.

    Groups come out in order of first appearance, each in timestamp order.
    Ties keep input order unless ``config.tie_break`` names extra sort keys.
    All rows are validated before any group is scanned, and nothing is
    returned unless every group finished.
    """
    groups = _partition(rows, config)
    if groups:
        check_gap_type(next(iter(groups.values()))[0].ts, config.gap_threshold)
    if config.workers > 1 and len(groups) > 1:
        chunks = _scan_parallel(groups, config, cancel)
    else:
        chunks = [_scan_group_checked(key, events, config.gap_threshold, cancel) for key, events in groups.items()]

    out = [aug for chunk in chunks for aug in chunk]
    n_sessions = sum(1 for aug in out if aug.is_session_start)
    logger.info("Sessionized %d rows into %d sessions across %d groups", len(out), n_sessions, len(groups))
    return out


def sessionize_records(
    records: Iterable[Mapping[str, Any]],
    config: SessionConfig,
    *,
    cancel: Optional[threading.Event] = None,
) -> List[Dict[str, Any]]:
    """Same as :func:`sessionize` for mapping rows, returning flat dicts."""
    out: List[Dict[str, Any]] = []
    for pos, aug in enumerate(sessionize(records, config, cancel=cancel)):
        if not isinstance(aug.row, Mapping):
            raise SchemaError(f"rows must be mappings, got {type(aug.row).__name__}", position=pos)
        for name in (config.start_field, config.session_field):
            if name in aug.row:
                raise SchemaError(f"output field {name!r} already present on input rows", field=name)
        record = dict(aug.row)
        record[config.start_field] = aug.is_session_start
        record[config.session_field] = aug.session_no
        out.append(record)
    return out


__all__ = [
    "AugmentedRow",
    "check_gap_type",
    "is_null",
    "resolve_field",
    "session_numbers",
    "sessionize",
    "sessionize_records",
]

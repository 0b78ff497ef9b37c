from __future__ import annotations

import dataclasses
import datetime as dt
import numbers
from typing import Any, Mapping, Tuple, Union

import numpy as np
import pandas as pd

from .errors import ValidationError

Selector = Union[str, int]

DEFAULT_GAP = pd.Timedelta(minutes=30)


def parse_gap(value: Any) -> Any:
    """Normalise a gap threshold given in config or on the command line.

    Numbers pass through (numeric timestamps, e.g. epoch seconds). Strings
    holding a number become that number, other strings go through
    ``pd.Timedelta`` (``"10min"``, ``"00:10:00"``).
    """
    if isinstance(value, bool):
        raise ValidationError(f"gap threshold must be a duration or a number, got {value!r}")
    if isinstance(value, (pd.Timedelta, numbers.Number)):
        return value
    if isinstance(value, (dt.timedelta, np.timedelta64, pd.offsets.Tick)):
        return pd.Timedelta(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
        try:
            return pd.Timedelta(text)
        except ValueError as exc:
            raise ValidationError(f"cannot parse gap threshold {value!r}: {exc}") from exc
    raise ValidationError(f"unsupported gap threshold type {type(value).__name__}")


def _is_negative(gap: Any) -> bool:
    if pd.isna(gap):
        raise ValidationError("gap threshold must not be NaN/NaT")
    if isinstance(gap, pd.Timedelta):
        return gap < pd.Timedelta(0)
    return gap < 0


def as_selectors(value: Any) -> Tuple[Selector, ...]:
    """A single column name or position becomes a one-element tuple."""
    if value is None:
        return ()
    if isinstance(value, (str, int)):
        return (value,)
    try:
        return tuple(value)
    except TypeError as exc:
        raise ValidationError(f"tie_break must be column names or positions, got {value!r}") from exc


def _check_selector(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(f"{name} must be a column name or position, got {value!r}")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} must not be empty")


@dataclasses.dataclass(frozen=True)
class SessionConfig:
    """Everything one sessionization run depends on.

    Parameters
    ----------
    identifier_field : str or int
        Grouping selector: mapping key, attribute name or tuple position.
    timestamp_field : str or int
        Ordering selector. Values must be totally ordered and subtractable.
    gap_threshold : duration
        Largest difference between consecutive timestamps that keeps them in
        one session. Zero is legal, negative is not.
    tie_break : tuple
        Extra selectors used as secondary sort keys for equal timestamps.
        Without them ties keep input order.
    start_field, session_field : str
        Names of the two output columns.
    workers : int
        Thread pool size for per-group scans.
    """

    identifier_field: Selector = "user_id"
    timestamp_field: Selector = "ts"
    gap_threshold: Any = DEFAULT_GAP
    tie_break: Tuple[Selector, ...] = ()
    start_field: str = "is_session_start"
    session_field: str = "session_no"
    workers: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "gap_threshold", parse_gap(self.gap_threshold))
        object.__setattr__(self, "tie_break", as_selectors(self.tie_break))
        self.validate()

    def validate(self) -> None:
        _check_selector("identifier_field", self.identifier_field)
        _check_selector("timestamp_field", self.timestamp_field)
        for sel in self.tie_break:
            _check_selector("tie_break", sel)
        if _is_negative(self.gap_threshold):
            raise ValidationError(f"gap threshold must be non-negative, got {self.gap_threshold!r}")
        for name in ("start_field", "session_field"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{name} must be a non-empty string")
        if self.start_field == self.session_field:
            raise ValidationError("start_field and session_field must differ")
        inputs = {self.identifier_field, self.timestamp_field, *self.tie_break}
        clash = inputs & {self.start_field, self.session_field}
        if clash:
            raise ValidationError(f"output fields collide with input selectors: {sorted(map(str, clash))}")
        if isinstance(self.workers, bool) or not isinstance(self.workers, int) or self.workers < 1:
            raise ValidationError(f"workers must be a positive integer, got {self.workers!r}")

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "SessionConfig":
        """Build from the ``sessionize`` section of a resolved config."""
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {k: v for k, v in cfg.items() if k in known and v is not None}
        return cls(**kwargs)

    @property
    def sort_fields(self) -> Tuple[Selector, ...]:
        return (self.timestamp_field, *self.tie_break)

    def replace(self, **changes: Any) -> "SessionConfig":
        return dataclasses.replace(self, **changes)


__all__ = ["SessionConfig", "as_selectors", "parse_gap", "DEFAULT_GAP"]

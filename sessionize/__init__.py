"""Gap-based sessionization of identifier-tagged event rows."""
from .config import SessionConfig, parse_gap
from .core import AugmentedRow, session_numbers, sessionize, sessionize_records
from .errors import (
    DestinationExistsError,
    NullTimestampError,
    SchemaError,
    SessionizeCancelled,
    SessionizeError,
    ValidationError,
)
from .frame import check_sessions, sessionize_frame
from .runner import sessionize_table, usage
from .summary import summarize_sessions

__all__ = [
    "AugmentedRow",
    "SessionConfig",
    "parse_gap",
    "session_numbers",
    "sessionize",
    "sessionize_records",
    "sessionize_frame",
    "check_sessions",
    "summarize_sessions",
    "sessionize_table",
    "usage",
    "SessionizeError",
    "ValidationError",
    "SchemaError",
    "NullTimestampError",
    "DestinationExistsError",
    "SessionizeCancelled",
]

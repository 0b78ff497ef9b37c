"""Error taxonomy of the sessionizer.

Every error aborts the whole run; nothing is published on failure.
"""
from __future__ import annotations


class SessionizeError(Exception):
    """Base class for all sessionizer failures."""


class ValidationError(SessionizeError, ValueError):
    """Invalid configuration: negative gap, empty selector, bad gap type."""


class SchemaError(SessionizeError, LookupError):
    """A referenced field does not resolve on the input rows."""

    def __init__(self, message: str, *, field=None, position=None) -> None:
        super().__init__(message)
        self.field = field
        self.position = position


class NullTimestampError(SessionizeError, ValueError):
    """A row has a null or missing timestamp."""

    def __init__(self, message: str, *, identifiers=(), positions=()) -> None:
        super().__init__(message)
        self.identifiers = list(identifiers)
        self.positions = list(positions)


class DestinationExistsError(SessionizeError, FileExistsError):
    """Output destination is already populated."""


class SessionizeCancelled(SessionizeError):
    """The run was cancelled between groups; no output was produced."""


__all__ = [
    "SessionizeError",
    "ValidationError",
    "SchemaError",
    "NullTimestampError",
    "DestinationExistsError",
    "SessionizeCancelled",
]

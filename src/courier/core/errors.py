"""Domain exceptions raised outside the delivery hot path.

The orchestrator itself never raises; these exceptions surface at the
producer boundary (validation) and in operator-facing lookups.
"""

from __future__ import annotations


class CourierError(Exception):
    """Base class for Courier domain errors."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(CourierError):
    """A producer request failed boundary validation.

    Parameters
    ----------
    detail:
        Human-readable description of the problem.
    field:
        Name of the offending field, when one is identifiable.

    """

    def __init__(self, detail: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(detail)


class NotFoundError(CourierError):
    """A referenced record does not exist."""


class ConflictError(CourierError):
    """The requested change conflicts with the record's current state."""


class QueueUnavailableError(CourierError):
    """A job could not be written to the notification queue."""

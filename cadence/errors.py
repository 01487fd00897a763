"""Error hierarchy shared by the scheduling engine and its workflows.

Pure computations hand these back inside :class:`cadence.results.Err`
values; workflow commits raise them inside the transaction boundary and
return them to the caller once the transaction has been rolled back.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .domain import Conflict


class ScheduleError(RuntimeError):
    """Base exception for every scheduling failure."""


class ValidationError(ScheduleError):
    """The caller supplied input that cannot be scheduled.

    Examples: empty weekday set, non-positive session counts, merge targets
    with a different phase or level, a makeup date outside its phase.
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": "validation", "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class ConflictError(ScheduleError):
    """A room or teacher would be double-booked.

    Carries the full list of overlapping bookings so that callers can show
    which class blocks the change.
    """

    def __init__(self, conflicts: Sequence["Conflict"], message: str | None = None) -> None:
        self.conflicts = list(conflicts)
        if message is None:
            message = f"{len(self.conflicts)} schedule conflict(s) detected"
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict[str, object]:
        return {
            "error": "conflict",
            "message": self.message,
            "conflicts": [conflict.as_dict() for conflict in self.conflicts],
        }


class IndeterminateComputation(ScheduleError):
    """An end date cannot be computed and must be entered manually."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict[str, object]:
        return {"error": "indeterminate", "message": self.message}


class TransactionFailure(ScheduleError):
    """An atomic commit failed; nothing from it was persisted."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict[str, object]:
        return {"error": "transaction", "message": self.message}

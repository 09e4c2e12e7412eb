"""Exceptions raised by the workout store and service layer."""

from typing import List, Optional, Tuple


class WorkoutValidationError(ValueError):
    """Input rejected before it reached storage.

    ``field`` and ``reason`` describe the first offending field. ``errors``
    holds every ``(field, reason)`` pair when several fields failed at once.
    """

    def __init__(
        self,
        field: str,
        reason: str,
        errors: Optional[List[Tuple[str, str]]] = None,
    ) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason
        self.errors = errors or [(field, reason)]

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "reason": self.reason,
            "errors": [{"field": f, "reason": r} for f, r in self.errors],
        }


class StorageUnavailable(RuntimeError):
    """The database could not complete an operation. Safe to retry."""


class ExerciseInUseError(ValueError):
    """An exercise cannot be deleted while workouts reference it."""

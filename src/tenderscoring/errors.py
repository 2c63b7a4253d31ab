"""Error taxonomy for the evaluation engine.

Every error here is per-operation: the caller receives it, nothing inside the
engine retries or swallows it. Compliance failures are not errors; they are
reported on the score record and in the results.
"""

from __future__ import annotations

from typing import Iterable


class ScoringError(Exception):
    """Base class for engine errors."""


class ValidationError(ScoringError, ValueError):
    """Malformed rubric, invalid submission or broken weight invariant."""

    def __init__(self, issues: str | Iterable[str]):
        self.issues = [issues] if isinstance(issues, str) else list(issues)
        super().__init__("; ".join(self.issues))


class StateError(ScoringError):
    """Action attempted in a state that forbids it."""


class PermissionDenied(StateError):
    """Caller role may not perform the requested action."""


class ConcurrencyConflict(ScoringError):
    """Write against a stale or unspecified version of a score record."""

    def __init__(self, message: str, *, current_version: int | None = None):
        super().__init__(message)
        self.current_version = current_version


class NotFound(ScoringError, KeyError):
    """Unknown rubric, matrix or score record."""

    def __str__(self) -> str:  # pragma: no cover - trivial
        return str(self.args[0]) if self.args else "not found"


__all__ = [
    "ScoringError",
    "ValidationError",
    "StateError",
    "PermissionDenied",
    "ConcurrencyConflict",
    "NotFound",
]

"""Exception hierarchy for the orchestration core.

All of these are recoverable: a rejected event leaves the game state untouched
and the error is reported to whoever submitted the event.
"""

from __future__ import annotations

from typing import List, Optional


class GameError(Exception):
    """Base class for every error raised by the core."""


class IllegalTransition(GameError):
    """Event kind is not accepted in the current phase."""

    def __init__(self, phase: str, event: str, message: Optional[str] = None):
        self.phase = phase
        self.event = event
        super().__init__(message or f"Event {event} is not allowed in phase {phase}")


class GameValidationError(GameError):
    """Structural problem with a pack selection, roster or configuration."""


class PackValidationError(GameValidationError):
    """Pack combination breaks a constraint."""

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(self.errors) or "Invalid pack selection")


class RoleCountMismatch(GameValidationError):
    """Number of roles does not match the number of players."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} roles but got {actual}")


class ConstraintViolation(GameError):
    """A single submission (vote, night action, chat line) was rejected."""

    def __init__(self, message: str, *, player_id: Optional[str] = None):
        self.player_id = player_id
        super().__init__(message)


class FSMError(RuntimeError):
    """Internal state machine failure; indicates a bug, not bad input."""

"""Exceptions raised across the pipeline."""

from __future__ import annotations


class VecnaError(Exception):
    """Base class for pipeline errors."""


class GameNotFound(VecnaError):
    def __init__(self, game_id: int):
        super().__init__(f"Game {game_id} not found")
        self.game_id = game_id


class FamilyNotFound(VecnaError):
    def __init__(self, family_id: int):
        super().__init__(f"Family {family_id} not found")
        self.family_id = family_id


class InvalidTransition(VecnaError):
    """Raised when a human action targets a game in the wrong state."""

    def __init__(self, message: str, current_state: str | None = None):
        super().__init__(message)
        self.current_state = current_state


class ContentServiceError(VecnaError):
    """Raised when the parse/generate service cannot be reached or its answer is unreadable.

    ``status_code`` and a truncated ``body`` are set when a response arrived.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PreconditionFailed(VecnaError):
    """Raised when a game lacks the data an action needs."""

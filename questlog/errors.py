"""Error taxonomy for the questlog engine.

Every engine error is a ValueError so callers that only care about "bad
request" can catch the base class. The API layer maps each subclass to an
HTTP status (see questlog.api.app).
"""

from typing import Optional


class EngineError(ValueError):
    """Base class for errors surfaced to callers of the engine."""

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(EngineError):
    """Bad input shape, unknown stat category, or malformed identifier."""


class NotFoundError(EngineError):
    """Entity is absent or not owned by the caller."""


class StateConflictError(EngineError):
    """Operation conflicts with the entity's current state (e.g. task not pending)."""


class UnauthorizedError(EngineError):
    """Caller identity is missing or unusable."""

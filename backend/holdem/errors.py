"""Errors raised by the game aggregate for rejected requests.

All of them subclass ValueError so callers that only care about "the request
was refused" can keep catching ValueError.  None of them is fatal: the room is
left exactly as it was and only the originating session hears about it.
"""

from __future__ import annotations


class GameError(ValueError):
    """Base class for rejected actions."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(GameError):
    """Malformed or out-of-range input (bad raise size, message too long...)."""

    kind = "validation"


class AuthorizationError(GameError):
    """Host-only action attempted by someone else, or a self-kick."""

    kind = "authorization"


class PreconditionError(GameError):
    """The room is not in a state that allows the action."""

    kind = "precondition"


class NotFoundError(GameError):
    """Unknown room or player."""

    kind = "not_found"

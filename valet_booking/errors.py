"""Typed errors raised by the booking core.

Every rejection carries a stable ``kind`` and an HTTP-equivalent
``status_code`` so a transport adapter can map it without inspecting
the message.
"""

from typing import Any

from pydantic import ValidationError as PydanticValidationError


class BookingError(Exception):
    """Base class for all booking core errors."""

    kind: str = "error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class ValidationError(BookingError):
    """Malformed input, non-chronological interval or unknown enum value."""

    kind = "validation"
    status_code = 400


class NotFoundError(BookingError):
    """Referenced location, schedule or booking does not exist."""

    kind = "not_found"
    status_code = 404


class ConflictError(BookingError):
    """Candidate interval overlaps an existing active booking."""

    kind = "conflict"
    status_code = 409


class ForbiddenError(BookingError):
    """Requester's role or ownership does not authorize the action."""

    kind = "forbidden"
    status_code = 403


class InvalidStateError(BookingError):
    """Requested transition is not allowed from the booking's current status."""

    kind = "invalid_state"
    status_code = 400


def from_pydantic(exc: PydanticValidationError) -> ValidationError:
    """Translate a pydantic validation failure into the core ValidationError."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{location}: {message}" if location else message)
    return ValidationError("; ".join(messages) or str(exc))

"""Domain errors raised by the recovery core.

Services raise these; the HTTP layer maps each kind to a status code.
"""

from __future__ import annotations


class RecoveryError(Exception):
    status_code = 500

    def __init__(self, detail: str, *, field: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict[str, str | None]:
        return {"detail": self.detail, "field": self.field}


class NotFound(RecoveryError):
    """A referenced bike, location or attempt does not exist."""

    status_code = 404


class InvalidArgument(RecoveryError):
    """Malformed input: coordinate, tracker id, cancellation reason."""

    status_code = 400


class InvalidState(RecoveryError):
    """The bike or attempt is not in a state that permits the transition."""

    status_code = 409


class Conflict(RecoveryError):
    status_code = 409

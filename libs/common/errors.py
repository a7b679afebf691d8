"""Structured error kinds raised by the service layer.

Each kind is an ``HTTPException`` so routers need no translation code; the
``reason`` attribute is a stable machine-readable code.
"""

from fastapi import HTTPException, status


class DomainError(HTTPException):
    kind = "error"
    status_code_for_kind = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, reason: str, message: str = ""):
        self.reason = reason
        self.message = message or reason.replace("_", " ")
        super().__init__(
            status_code=self.status_code_for_kind,
            detail={"error": self.kind, "reason": reason, "message": self.message},
        )

    def __str__(self) -> str:
        return f"{self.kind}: {self.reason}"


class NotFound(DomainError):
    """Referenced training, session, cancellation or alert does not exist."""

    kind = "not_found"
    status_code_for_kind = status.HTTP_404_NOT_FOUND


class InvalidArgument(DomainError):
    """Malformed input: bad window, bad virtual reference, bad config."""

    kind = "invalid_argument"
    status_code_for_kind = status.HTTP_400_BAD_REQUEST


class Conflict(DomainError):
    """State does not allow the operation (already cancelled, started, ...)."""

    kind = "conflict"
    status_code_for_kind = status.HTTP_409_CONFLICT

"""Domain exceptions raised by services and mapped to HTTP in app.main.

Every externally visible failure carries its own status code and a
user-facing message.  Handlers render them as ``{"error": message}``.
Anything that is not an AuthServiceError is an internal error and is
never shown to the caller.
"""

from __future__ import annotations


class AuthServiceError(Exception):
    status_code: int = 400

    def __init__(self, message: str, *, headers: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.headers = headers


class ValidationFailed(AuthServiceError):
    status_code = 400


class ConflictError(AuthServiceError):
    """Duplicate slug, email, membership or pending invitation."""

    status_code = 400


class RateLimitedError(AuthServiceError):
    # 400 rather than 429: clients show the message inline on the form.
    status_code = 400


class UnauthenticatedError(AuthServiceError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ForbiddenError(AuthServiceError):
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class NotFoundError(AuthServiceError):
    status_code = 404


class EmailDispatchError(AuthServiceError):
    """The mail provider rejected or never received the message."""

    status_code = 502

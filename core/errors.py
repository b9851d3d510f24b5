"""
core/errors.py -- Domain error taxonomy for TaskTrack.

Every error a service can raise on purpose is an AppError subclass carrying
the HTTP status, a stable machine-readable code, and a client-safe message.
Services raise; a single exception handler in api/main.py converts the error
into the response envelope. Nothing here imports FastAPI, so stores and
services stay framework-agnostic.

Security:
  InvalidCredentials and InvalidRefreshToken have fixed messages. Callers must
  not pass a more specific message -- the whole point is that unknown email,
  wrong password and inactive account look identical on the wire.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or tasks/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for expected, client-facing failures."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class DuplicateUser(AppError):
    """Registration or user write collides with an existing username or email."""

    status_code = 400
    code = "duplicate_user"
    message = "User already exists."


class ValidationFailed(AppError):
    """A business rule rejected an otherwise well-formed request."""

    status_code = 400
    code = "validation_failed"
    message = "The request could not be applied."


# ---------------------------------------------------------------------------
# 401
# ---------------------------------------------------------------------------


class InvalidCredentials(AppError):
    status_code = 401
    code = "invalid_credentials"
    message = "Invalid credentials."


class InvalidRefreshToken(AppError):
    status_code = 401
    code = "invalid_refresh_token"
    message = "Invalid refresh token."


class InvalidToken(AppError):
    """Raised by the token service for bad signatures, expiry, or malformed claims."""

    status_code = 401
    code = "invalid_token"
    message = "Invalid or expired token."


class AuthenticationRequired(AppError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


# ---------------------------------------------------------------------------
# 403 / 404
# ---------------------------------------------------------------------------


class AccessDenied(AppError):
    status_code = 403
    code = "access_denied"
    message = "Access denied."


class UserNotFound(AppError):
    status_code = 404
    code = "user_not_found"
    message = "User not found."


class TaskNotFound(AppError):
    status_code = 404
    code = "task_not_found"
    message = "Task not found."

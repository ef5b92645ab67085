"""
auth/errors.py -- Error taxonomy and tagged results for the session layer.

Expected rejections (wrong password, stale token, duplicate email) are values,
not exceptions: every SessionManager and RequestAuthenticator operation returns
Ok(value) or Err(AuthError). Only the transport layer turns an Err into an
HTTP response, so callers can tell an expected rejection from a real fault.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Rejection kinds. The value doubles as the machine-readable error code."""

    VALIDATION = "validation_error"
    UNAUTHORIZED = "unauthorized"
    INVALID_CREDENTIALS = "invalid_credentials"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INTERNAL = "internal_error"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.INVALID_CREDENTIALS: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}


@dataclass(frozen=True)
class AuthError:
    kind: ErrorKind
    message: str
    errors: list = field(default_factory=list)

    @property
    def status_code(self) -> int:
        return self.kind.status_code


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: AuthError


Result = Union[Ok[T], Err]


# ---------------------------------------------------------------------------
# Canonical messages
# ---------------------------------------------------------------------------

MSG_FIELDS_REQUIRED = "All fields are required"
MSG_INVALID_EMAIL = "Invalid email address"
MSG_EMAIL_TAKEN = "Email address already registered"
MSG_LOGIN_FIELDS_REQUIRED = "Email and password are required"
MSG_INVALID_CREDENTIALS = "Invalid email or password"
MSG_UNAUTHORIZED = "Unauthorized request"
MSG_INVALID_ACCESS_TOKEN = "Invalid access token"
MSG_REFRESH_REQUIRED = "Refresh token is required"
MSG_INVALID_REFRESH_TOKEN = "Invalid refresh token"
MSG_USER_NOT_FOUND = "User not found"
MSG_WRONG_OLD_PASSWORD = "Old password is incorrect"
MSG_PASSWORD_MISMATCH = "New password and confirmation do not match"
MSG_PASSWORD_TOO_LONG = "Password must be at most 72 bytes"
MSG_NO_PROFILE_FIELDS = "At least one of email or fullName is required"
MSG_INTERNAL = "Something went wrong. Please try again later."


def fail(kind: ErrorKind, message: str, errors: list | None = None) -> Err:
    return Err(AuthError(kind=kind, message=message, errors=errors or []))


class AuthFailure(Exception):
    """Carries an AuthError out of a route or dependency.

    Raised only by unwrap() at the transport seam; api.main registers the one
    handler that turns it into an error envelope.
    """

    def __init__(self, error: AuthError) -> None:
        super().__init__(error.message)
        self.error = error


def unwrap(result: Result[T]) -> T:
    """Return the Ok value, or raise AuthFailure for an Err."""
    if isinstance(result, Err):
        raise AuthFailure(result.error)
    return result.value

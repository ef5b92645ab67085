"""
API request and response models for Tokengate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format: JSON keys are camelCase (fullName, accessToken, ...). Models use
snake_case attributes with a camelCase alias generator; populate_by_name lets
tests and internal callers construct them with either spelling.

Request fields are Optional on purpose: a missing field is a domain rejection
(e.g. login without a password is 401, registration without a name is 400),
decided by the session manager, not a pydantic 422.
"""

from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import PublicUser
from auth.passwords import MAX_PASSWORD_BYTES, exceeds_limit

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)
_CAMEL_FROZEN = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    """Reject passwords whose UTF-8 encoding exceeds bcrypt's input limit."""
    if value is not None and exceeds_limit(value):
        raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


# Every password field: at most 72 bytes once UTF-8 encoded.
_Password = Annotated[Optional[str], AfterValidator(_check_password_bytes)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users/register."""

    model_config = _CAMEL

    full_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: _Password = None
    avatar_url: Optional[str] = Field(default=None, max_length=2048)


class LoginRequest(BaseModel):
    model_config = _CAMEL

    email: Optional[str] = Field(default=None, max_length=255)
    password: _Password = None


class RefreshRequest(BaseModel):
    """Body for POST /api/v1/users/refresh-token. Ignored when the cookie is present."""

    model_config = _CAMEL

    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    model_config = _CAMEL

    old_password: _Password = None
    new_password: _Password = None
    confirm_password: _Password = None


class UpdateProfileRequest(BaseModel):
    """Request body for PATCH /api/v1/users/me. Omitted fields are left unchanged."""

    model_config = _CAMEL

    email: Optional[str] = Field(default=None, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Sanitized user: never carries the password hash or refresh token."""

    model_config = _CAMEL_FROZEN

    id: str
    email: str
    full_name: str
    avatar_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            avatar_url=user.avatar_url,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TokenPairResponse(BaseModel):
    model_config = _CAMEL_FROZEN

    access_token: str
    refresh_token: str


class LoginResponse(BaseModel):
    model_config = _CAMEL_FROZEN

    user: UserResponse
    access_token: str
    refresh_token: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ApiResponse(BaseModel):
    """Success envelope: {statusCode, data, message, success: true}."""

    model_config = _CAMEL_FROZEN

    status_code: int
    data: Any
    message: str = "Success"
    success: bool = True


class ApiErrorResponse(BaseModel):
    """Error envelope: {statusCode, data: null, message, errors, success: false}."""

    model_config = _CAMEL_FROZEN

    status_code: int
    data: None = None
    message: str
    errors: list = Field(default_factory=list)
    success: bool = False

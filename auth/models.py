"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container). Dataclasses own domain shape;
the store, the session manager, and the routes do the work. public_view() is
the one mapping that lives here because every outward path must use it.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

AVATAR_URL_TEMPLATE = "https://api.dicebear.com/9.x/identicon/svg?seed={seed}"


@dataclass
class User:
    """A stored identity.

    password_hash and refresh_token_hash never leave the service. A
    refresh_token_hash of None means the user has no active session.
    """

    email: str
    full_name: str
    password_hash: str
    id: str | None = None
    avatar_url: str | None = None
    refresh_token_hash: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class PublicUser:
    """Sanitized projection of a User: no password hash, no refresh token."""

    id: str
    email: str
    full_name: str
    avatar_url: str | None
    created_at: str | None
    updated_at: str | None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class LoginResult:
    user: PublicUser
    tokens: TokenPair


@dataclass(frozen=True)
class AuthContext:
    """Authenticated identity handed to route handlers by the request gate."""

    user_id: str
    user: PublicUser


def default_avatar_url(email: str) -> str:
    """Derive a deterministic identicon URL from the user's email."""
    return AVATAR_URL_TEMPLATE.format(seed=quote(email, safe=""))


def public_view(user: User) -> PublicUser:
    return PublicUser(
        id=user.id or "",
        email=user.email,
        full_name=user.full_name,
        avatar_url=user.avatar_url,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )

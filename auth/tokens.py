"""
auth/tokens.py -- JWT signing/verification and session cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Two token kinds, each with its own secret and
       lifetime. Every token carries sub (user id), type, iat, exp, and a
       random jti so two tokens minted in the same second still differ.
       verify() checks signature, expiry, and that the type claim matches the
       expected kind; any failure raises InvalidToken with a generic message.

  Secrets: injected at construction (TokenSigner.from_settings()). core.config
       guarantees both are at least 32 chars and differ from each other, so an
       access token never verifies as a refresh token, or vice versa.

  Refresh fingerprint: the user record stores HMAC-SHA256(refresh_secret,
       token), never the token itself. The hash is deterministic so the session
       manager can compare the presented token with the stored one; a leaked
       database row cannot be replayed as a cookie.

Layer rule: no imports from api/. core/ is imported for the Settings type only.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.models import TokenPair

if TYPE_CHECKING:
    from core.config import Settings

_ALGORITHM = "HS256"

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class InvalidToken(Exception):
    """Raised when a token fails verification for any reason."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenSigner:
    """Signs and verifies access and refresh tokens.

    Args:
        access_secret / refresh_secret: HMAC keys, one per token kind.
        access_ttl / refresh_ttl:       Lifetimes in seconds.
        clock:                          Returns the current UTC datetime.
                                        Injected by tests to mint tokens that
                                        are already expired.
    """

    def __init__(
        self,
        access_secret: str,
        access_ttl: int,
        refresh_secret: str,
        refresh_ttl: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secrets = {TokenKind.ACCESS: access_secret, TokenKind.REFRESH: refresh_secret}
        self._ttls = {TokenKind.ACCESS: access_ttl, TokenKind.REFRESH: refresh_ttl}
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenSigner:
        return cls(
            access_secret=settings.access_token_secret,
            access_ttl=settings.access_token_ttl,
            refresh_secret=settings.refresh_token_secret,
            refresh_ttl=settings.refresh_token_ttl,
        )

    def ttl(self, kind: TokenKind) -> int:
        return self._ttls[kind]

    def sign(self, subject: str, kind: TokenKind) -> str:
        """Encode a signed JWT for subject that expires after the kind's TTL."""
        now = self._clock()
        payload = {
            "sub": subject,
            "type": kind.value,
            "iat": now,
            "exp": now + timedelta(seconds=self._ttls[kind]),
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM)

    def verify(self, token: str, kind: TokenKind) -> str:
        """Return the subject of a valid token of the given kind.

        Raises InvalidToken on bad signature, malformed input, expiry, a
        missing subject, or a type claim for the other kind. The message is
        the same in every case so callers cannot become an oracle.
        """
        try:
            payload = jwt.decode(token, self._secrets[kind], algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise InvalidToken("Invalid token") from exc
        subject = payload.get("sub")
        if not subject or payload.get("type") != kind.value:
            raise InvalidToken("Invalid token")
        return subject

    def issue_pair(self, subject: str) -> TokenPair:
        return TokenPair(
            access_token=self.sign(subject, TokenKind.ACCESS),
            refresh_token=self.sign(subject, TokenKind.REFRESH),
        )

    def fingerprint(self, refresh_token: str) -> str:
        """Return HMAC-SHA256(refresh_secret, token) as a hex string."""
        return hmac.new(
            self._secrets[TokenKind.REFRESH].encode(),
            refresh_token.encode(),
            hashlib.sha256,
        ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookies(response, tokens: TokenPair, signer: TokenSigner, secure: bool = True) -> None:
    """Write both tokens as httpOnly cookies on the response.

    httponly=True: JS cannot read the cookies (XSS mitigation).
    samesite="strict": cookies are never sent on cross-site requests.
    secure: only sent over HTTPS; SECURE_COOKIES=false for local HTTP dev.
    max_age: matches each token's lifetime so cookie and token expire together.
    """
    response.set_cookie(
        ACCESS_COOKIE,
        value=tokens.access_token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=signer.ttl(TokenKind.ACCESS),
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=tokens.refresh_token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=signer.ttl(TokenKind.REFRESH),
    )


def clear_auth_cookies(response, secure: bool = True) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, httponly=True, samesite="strict", secure=secure)

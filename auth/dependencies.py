"""
auth/dependencies.py -- Request authenticator and its FastAPI Depends() helper.

Credential sources are checked in priority order:
  1. "accessToken" cookie -- set by POST /users/login and /users/refresh-token.
  2. Authorization: Bearer <token> header -- non-browser clients.

RequestAuthenticator is read-only: it verifies the access token, resolves the
subject to a user record, and returns an AuthContext. It never writes to the
store and never issues tokens. Every failure returns the same UNAUTHORIZED
error so a caller cannot probe for the reason.

get_current_user() is the FastAPI dependency. Handlers receive the
AuthContext as a parameter instead of reading attributes patched onto the
request object.

Layer rule: no imports from api/ or core/. auth/dependencies.py may import
from fastapi because it is part of the dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import MSG_INTERNAL, MSG_INVALID_ACCESS_TOKEN, MSG_UNAUTHORIZED, ErrorKind, Ok, Result, fail, unwrap
from auth.models import AuthContext, public_view
from auth.store import UserStore
from auth.tokens import ACCESS_COOKIE, InvalidToken, TokenKind, TokenSigner

logger = logging.getLogger("tokengate.auth")


class RequestAuthenticator:
    def __init__(self, store: UserStore, signer: TokenSigner) -> None:
        self.store = store
        self.signer = signer

    @staticmethod
    def extract_token(cookies: Mapping[str, str], authorization: str | None) -> str | None:
        """Return the access token from the cookie, else from a Bearer header."""
        token = cookies.get(ACCESS_COOKIE)
        if token:
            return token
        if authorization and authorization.startswith("Bearer "):
            return authorization[7:].strip() or None
        return None

    def authenticate(self, token: str | None) -> Result[AuthContext]:
        if not token:
            return fail(ErrorKind.UNAUTHORIZED, MSG_UNAUTHORIZED)
        try:
            user_id = self.signer.verify(token, TokenKind.ACCESS)
        except InvalidToken:
            return fail(ErrorKind.UNAUTHORIZED, MSG_INVALID_ACCESS_TOKEN)

        try:
            user = self.store.get_by_id(user_id)
        except SQLAlchemyError:
            logger.exception("User lookup failed during request authentication")
            return fail(ErrorKind.INTERNAL, MSG_INTERNAL)
        # Stale token for a deleted account.
        if user is None:
            return fail(ErrorKind.UNAUTHORIZED, MSG_INVALID_ACCESS_TOKEN)
        return Ok(AuthContext(user_id=user.id, user=public_view(user)))


def get_current_user(request: Request) -> AuthContext:
    """Require authentication. Raises AuthFailure (401) if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(ctx: AuthContext = Depends(get_current_user)): ...
    """
    authenticator: RequestAuthenticator = request.app.state.authenticator
    token = authenticator.extract_token(request.cookies, request.headers.get("Authorization"))
    return unwrap(authenticator.authenticate(token))

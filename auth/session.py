"""
auth/session.py -- Session lifecycle: register, login, logout, refresh, password
and profile changes.

Per-user state machine:
  Anonymous      refresh_token_hash is None (or no record yet)
  Authenticated  refresh_token_hash holds the fingerprint of the one live
                 refresh token

login() and refresh() move a user to Authenticated; logout() and (by default)
change_password() move them back to Anonymous.

Refresh rotation policy (strict):
  The presented refresh token must match the stored fingerprint. A valid but
  superseded token means either a replay or a client that lost a race; both
  are treated as compromise and the stored fingerprint is cleared, ending the
  session for every holder. Rotation itself uses the store's compare-and-set,
  so only one of two concurrent refreshes with the same token can win.

Every public method returns Ok(value) or Err(AuthError). Store, hashing and
signing faults are caught at the method boundary, logged with a stack trace,
and returned as INTERNAL so raw driver errors never reach the transport.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import functools
import hmac
import logging
import re

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    MSG_EMAIL_TAKEN,
    MSG_FIELDS_REQUIRED,
    MSG_INTERNAL,
    MSG_INVALID_CREDENTIALS,
    MSG_INVALID_EMAIL,
    MSG_INVALID_REFRESH_TOKEN,
    MSG_LOGIN_FIELDS_REQUIRED,
    MSG_NO_PROFILE_FIELDS,
    MSG_PASSWORD_MISMATCH,
    MSG_PASSWORD_TOO_LONG,
    MSG_REFRESH_REQUIRED,
    MSG_USER_NOT_FOUND,
    MSG_WRONG_OLD_PASSWORD,
    Err,
    ErrorKind,
    Ok,
    Result,
    fail,
)
from auth.models import LoginResult, PublicUser, TokenPair, User, default_avatar_url, public_view
from auth.passwords import PasswordHasher, exceeds_limit
from auth.store import UserStore
from auth.tokens import InvalidToken, TokenKind, TokenSigner

logger = logging.getLogger("tokengate.auth")

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _password_too_long(field: str) -> Err:
    return fail(ErrorKind.VALIDATION, MSG_PASSWORD_TOO_LONG, [{"field": field, "message": MSG_PASSWORD_TOO_LONG}])


def _guarded(func):
    """Turn unexpected store/hash/sign failures into an INTERNAL result."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (SQLAlchemyError, ValueError, TypeError):
            logger.exception("Session operation %s failed", func.__name__)
            return fail(ErrorKind.INTERNAL, MSG_INTERNAL)

    return wrapper


class SessionManager:
    """Orchestrates the store, the password hasher, and the token signer.

    Args:
        store:                     Credential store adapter.
        hasher:                    bcrypt password hasher.
        signer:                    Access/refresh token signer.
        revoke_on_password_change: Clear the stored refresh token when the
                                   password changes, ending existing sessions.
    """

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        signer: TokenSigner,
        revoke_on_password_change: bool = True,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.signer = signer
        self.revoke_on_password_change = revoke_on_password_change

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    @_guarded
    def register(
        self,
        full_name: str | None,
        email: str | None,
        password: str | None,
        avatar_url: str | None = None,
    ) -> Result[PublicUser]:
        """Create a user record. No tokens are issued."""
        if _blank(full_name) or _blank(email) or _blank(password):
            return fail(ErrorKind.VALIDATION, MSG_FIELDS_REQUIRED)
        email = normalize_email(email)
        if not EMAIL_PATTERN.match(email):
            return fail(ErrorKind.VALIDATION, MSG_INVALID_EMAIL, [{"field": "email", "message": MSG_INVALID_EMAIL}])
        if exceeds_limit(password):
            return _password_too_long("password")
        if self.store.get_by_email(email) is not None:
            return fail(ErrorKind.CONFLICT, MSG_EMAIL_TAKEN)

        user = User(
            email=email,
            full_name=full_name.strip(),
            password_hash=self.hasher.hash(password),
            avatar_url=(avatar_url or "").strip() or default_avatar_url(email),
        )
        try:
            user_id = self.store.create_user(user)
        except IntegrityError:
            # A concurrent registration won the unique-email race.
            return fail(ErrorKind.CONFLICT, MSG_EMAIL_TAKEN)

        created = self.store.get_by_id(user_id)
        if created is None:
            logger.error("User %s missing immediately after insert", user_id)
            return fail(ErrorKind.INTERNAL, MSG_INTERNAL)
        logger.info("Registered user %s", user_id)
        return Ok(public_view(created))

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    @_guarded
    def login(self, email: str | None, password: str | None) -> Result[LoginResult]:
        """Verify credentials and start a new session.

        Unknown email and wrong password return the same error, and both run
        bcrypt once [C1]. The new refresh fingerprint is written before any
        token is handed out; if that write fails the login fails.
        """
        if _blank(email) or not password:
            return fail(ErrorKind.UNAUTHORIZED, MSG_LOGIN_FIELDS_REQUIRED)

        user = self.store.get_by_email(normalize_email(email))
        if user is None:
            self.hasher.dummy_verify(password)
            logger.info("Login rejected: bad credentials")
            return fail(ErrorKind.INVALID_CREDENTIALS, MSG_INVALID_CREDENTIALS)
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login rejected: bad credentials")
            return fail(ErrorKind.INVALID_CREDENTIALS, MSG_INVALID_CREDENTIALS)

        tokens = self.signer.issue_pair(user.id)
        # Overwrite, not append: any earlier refresh token is superseded.
        if not self.store.set_refresh_token_hash(user.id, self.signer.fingerprint(tokens.refresh_token)):
            logger.error("Could not persist refresh token for user %s", user.id)
            return fail(ErrorKind.INTERNAL, MSG_INTERNAL)

        logger.info("User %s logged in", user.id)
        return Ok(LoginResult(user=public_view(user), tokens=tokens))

    @_guarded
    def logout(self, user_id: str) -> Result[None]:
        """Clear the stored refresh token. Idempotent."""
        if not self.store.set_refresh_token_hash(user_id, None):
            return fail(ErrorKind.NOT_FOUND, MSG_USER_NOT_FOUND)
        logger.info("User %s logged out", user_id)
        return Ok(None)

    # ------------------------------------------------------------------
    # Refresh rotation
    # ------------------------------------------------------------------

    @_guarded
    def refresh(self, incoming_token: str | None) -> Result[TokenPair]:
        """Exchange a live refresh token for a new access/refresh pair.

        Every rejection after the presence check returns the same message, so
        callers cannot tell an expired token from a forged or rotated one.
        """
        if _blank(incoming_token):
            return fail(ErrorKind.UNAUTHORIZED, MSG_REFRESH_REQUIRED)

        try:
            user_id = self.signer.verify(incoming_token, TokenKind.REFRESH)
        except InvalidToken:
            return fail(ErrorKind.UNAUTHORIZED, MSG_INVALID_REFRESH_TOKEN)

        user = self.store.get_by_id(user_id)
        if user is None or user.refresh_token_hash is None:
            return fail(ErrorKind.UNAUTHORIZED, MSG_INVALID_REFRESH_TOKEN)

        presented = self.signer.fingerprint(incoming_token)
        if not hmac.compare_digest(presented, user.refresh_token_hash):
            logger.warning("Refresh token reuse detected for user %s; revoking session", user_id)
            self.store.swap_refresh_token_hash(user_id, user.refresh_token_hash, None)
            return fail(ErrorKind.UNAUTHORIZED, MSG_INVALID_REFRESH_TOKEN)

        tokens = self.signer.issue_pair(user_id)
        if not self.store.swap_refresh_token_hash(user_id, presented, self.signer.fingerprint(tokens.refresh_token)):
            # Another request rotated or revoked this token first.
            logger.warning("Refresh rotation lost a race for user %s", user_id)
            return fail(ErrorKind.UNAUTHORIZED, MSG_INVALID_REFRESH_TOKEN)

        logger.info("Rotated refresh token for user %s", user_id)
        return Ok(tokens)

    # ------------------------------------------------------------------
    # Account changes
    # ------------------------------------------------------------------

    @_guarded
    def change_password(
        self,
        user_id: str,
        old_password: str | None,
        new_password: str | None,
        confirm_password: str | None,
    ) -> Result[bool]:
        """Replace the password hash.

        Returns Ok(True) when existing sessions were revoked as part of the
        change, Ok(False) when they were left alone.
        """
        if not old_password or _blank(new_password) or not confirm_password:
            return fail(ErrorKind.VALIDATION, MSG_FIELDS_REQUIRED)
        if new_password != confirm_password:
            return fail(ErrorKind.VALIDATION, MSG_PASSWORD_MISMATCH)
        if exceeds_limit(new_password):
            return _password_too_long("newPassword")

        user = self.store.get_by_id(user_id)
        if user is None:
            return fail(ErrorKind.NOT_FOUND, MSG_USER_NOT_FOUND)
        if not self.hasher.verify(old_password, user.password_hash):
            return fail(ErrorKind.INVALID_CREDENTIALS, MSG_WRONG_OLD_PASSWORD)

        if not self.store.update_user(user_id, password_hash=self.hasher.hash(new_password)):
            return fail(ErrorKind.NOT_FOUND, MSG_USER_NOT_FOUND)
        if self.revoke_on_password_change:
            self.store.set_refresh_token_hash(user_id, None)
        logger.info("User %s changed password (sessions revoked=%s)", user_id, self.revoke_on_password_change)
        return Ok(self.revoke_on_password_change)

    @_guarded
    def update_profile(
        self,
        user_id: str,
        email: str | None = None,
        full_name: str | None = None,
    ) -> Result[PublicUser]:
        """Apply only the supplied fields and return the updated projection."""
        if email is None and full_name is None:
            return fail(ErrorKind.VALIDATION, MSG_NO_PROFILE_FIELDS)

        updates: dict = {}
        if full_name is not None:
            if _blank(full_name):
                return fail(ErrorKind.VALIDATION, MSG_FIELDS_REQUIRED)
            updates["full_name"] = full_name.strip()
        if email is not None:
            email = normalize_email(email)
            if not EMAIL_PATTERN.match(email):
                return fail(
                    ErrorKind.VALIDATION, MSG_INVALID_EMAIL, [{"field": "email", "message": MSG_INVALID_EMAIL}]
                )
            existing = self.store.get_by_email(email)
            if existing is not None and existing.id != user_id:
                return fail(ErrorKind.CONFLICT, MSG_EMAIL_TAKEN)
            updates["email"] = email

        try:
            updated = self.store.update_user(user_id, **updates)
        except IntegrityError:
            return fail(ErrorKind.CONFLICT, MSG_EMAIL_TAKEN)
        if not updated:
            return fail(ErrorKind.NOT_FOUND, MSG_USER_NOT_FOUND)

        user = self.store.get_by_id(user_id)
        if user is None:
            return fail(ErrorKind.NOT_FOUND, MSG_USER_NOT_FOUND)
        return Ok(public_view(user))


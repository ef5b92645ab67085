"""
auth/passwords.py -- bcrypt password hashing.

Uses bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug detection
creates a password longer than 72 bytes, which bcrypt 4.x rejects outright.

The work factor is fixed per process (BCRYPT_ROUNDS, default 10). bcrypt
embeds the cost and salt in the hash, so hashes written under an older cost
still verify after the setting changes.

Current bcrypt releases reject input longer than 72 bytes; older ones
truncated it silently. The limit applies to the UTF-8 encoding, so 72
accented characters are already too long. exceeds_limit() is shared by the
API models and the session manager.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72


def exceeds_limit(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


class PasswordHasher:
    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        # Timing equalization [C1]: verified against on unknown-email logins.
        self._dummy_hash = self.hash("tokengate_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a salted bcrypt hash. Errors propagate to the caller."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed. Never raises."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def dummy_verify(self, plain: str) -> None:
        self.verify(plain, self._dummy_hash)

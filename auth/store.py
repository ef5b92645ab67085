"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Session and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) is enforced by the schema. create_user() lets IntegrityError
  propagate so the caller can report a conflict even when two registrations
  race past the application-level existence check.

Concurrency:
  Every mutation is a single-row UPDATE by primary key, committed before the
  method returns. swap_refresh_token_hash() is a compare-and-set: the WHERE
  clause includes the expected value, so of two concurrent rotations of the
  same refresh token only one sees rowcount == 1.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex, opaque to callers
    Column("email", String(255), nullable=False, unique=True),
    Column("full_name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("avatar_url", Text),
    Column("refresh_token_hash", String(64)),  # NULL = no active session
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update_user() may touch. refresh_token_hash has dedicated methods.
_UPDATABLE_FIELDS = {"email", "full_name", "avatar_url", "password_hash"}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///tokengate.db")
        user_id = store.create_user(User(email="a@x.com", full_name="A", password_hash=h))
        user = store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        user_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    full_name=user.full_name,
                    password_hash=user.password_hash,
                    avatar_url=user.avatar_url,
                    refresh_token_hash=None,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: str, **fields) -> bool:
        """Update profile or password fields on an existing user.

        Unknown field names raise ValueError rather than being silently
        dropped. Returns True if a row was updated, False if user_id was not
        found. Raises IntegrityError if a new email collides with another user.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(**fields, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh token reference
    # ------------------------------------------------------------------

    def set_refresh_token_hash(self, user_id: str, token_hash: str | None) -> bool:
        """Overwrite (or clear, with None) the stored refresh token reference.

        Last writer wins. Returns False if user_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(refresh_token_hash=token_hash, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def swap_refresh_token_hash(self, user_id: str, expected: str, new: str | None) -> bool:
        """Replace the stored reference only if it still equals expected."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.refresh_token_hash == expected))
                .values(refresh_token_hash=new, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        password_hash=row.password_hash,
        avatar_url=row.avatar_url,
        refresh_token_hash=row.refresh_token_hash,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

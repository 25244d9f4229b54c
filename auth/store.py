"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route, strategy and session code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  bind_auth_key() is a conditional UPDATE (WHERE auth_key IS NULL), so two
  concurrent first-time platform logins cannot overwrite each other: the
  first binding wins and later ones are no-ops.

Layer rule: no imports from api/, content/, proxy/, or cache/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event, or_
from sqlalchemy.engine import Engine

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("firstname", String(255)),
    Column("lastname", String(255)),
    Column("role", String(20), nullable=False, server_default="viewer"),
    Column("blocked", Boolean, nullable=False, server_default="0"),
    Column("confirmed", Boolean, nullable=False, server_default="1"),
    Column("auth_key", String(255)),  # platform identity correlation key
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

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
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///contentgateway.db")
        user_id = store.create_user(User(username="ann", email="ann@x.io", password_hash=...))
        user = store.get_by_id(user_id)
        store.close()
    """

    _MUTABLE_FIELDS = {"role", "blocked", "confirmed", "firstname", "lastname", "password_hash"}

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Callers treat that as a conflict.
        """
        user_id = user.id or str(uuid.uuid4())
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    username=user.username,
                    email=user.email,
                    password_hash=user.password_hash or "",
                    firstname=user.firstname,
                    lastname=user.lastname,
                    role=user.role,
                    blocked=user.blocked,
                    confirmed=user.confirmed,
                    auth_key=user.auth_key,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user_id

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Unknown field names raise ValueError. auth_key is deliberately not
        accepted here -- it can only be set through bind_auth_key().
        Returns True if a row was updated.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def bind_auth_key(self, user_id: str, auth_key: str) -> bool:
        """Set auth_key only if the user has none yet. Returns True if it was set."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.auth_key.is_(None)))
                .values(auth_key=auth_key, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_auth_key(self, auth_key: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.auth_key == auth_key)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_identifier(self, identifier: str) -> User | None:
        """Look up a user whose email or username equals identifier (login form)."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.email == identifier, _users.c.username == identifier))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists(self, email: str, username: str) -> bool:
        """True if any user already has this email or this username."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.email == email, _users.c.username == username))
            ).fetchone()
        return row is not None

    def list_users(self) -> list[User]:
        """Return all users ordered by username. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        firstname=row.firstname,
        lastname=row.lastname,
        role=row.role,
        blocked=bool(row.blocked),
        confirmed=bool(row.confirmed),
        auth_key=row.auth_key,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

"""
auth/store.py -- SQLAlchemy Core persistence layer for users (the registry).

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and service code never touches SQL directly.

Ownership: a UserStore is an explicitly constructed object with a lifecycle
(built in the FastAPI lifespan, close()d on shutdown). Nothing in the process
reaches it as a module global, so each test can build a fresh one.

Sanitized views:
  Every public method returns PublicUser except find_by_email(), which
  returns the full User (including password_hash) for AuthService only.

Uniqueness:
  UNIQUE(email) is enforced by the database, not only by the pre-check in
  create()/update(). The pre-check produces a clean Conflict in the common
  case; the constraint closes the race between "email is free" and "insert".
  Emails are compared exactly as stored (SQLite's default BINARY collation),
  so "A@x.com" and "a@x.com" are distinct users.

Concurrency:
  create/update/remove take a registry-wide RLock and run their
  read-modify-write inside one transaction (engine.begin()), so two mutations
  of the same id never interleave. Reads take no lock.

Errors:
  IntegrityError -> Conflict. Any other DBAPIError (connection loss, locked
  database) -> StorageUnavailable, distinct from the domain errors.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

from auth.errors import Conflict, InvalidInput, NotFound, StorageUnavailable
from auth.hashing import CredentialHasher
from auth.models import PublicUser, Role, User

logger = logging.getLogger("keystone.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'keystone.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(16), nullable=False, server_default=Role.user.value),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    # Never reuse the id of a removed user.
    sqlite_autoincrement=True,
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


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_text(value: str | None, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} must be a non-empty string.")
    return value


def _coerce_role(role: Role | str | None) -> Role:
    if role is None:
        return Role.user
    try:
        return Role(role)
    except ValueError as exc:
        raise InvalidInput(f"Unknown role {role!r}.") from exc


@contextmanager
def _storage_errors(email: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into the auth error taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        raise Conflict(f"User with email {email} already exists") from exc
    except DBAPIError as exc:
        logger.error("Storage backend error: %s", exc.__class__.__name__)
        raise StorageUnavailable() from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Registry of User records.

    Usage:
        store = UserStore("sqlite:///:memory:", CredentialHasher(rounds=4))
        user = store.create("Admin User", "admin@example.com", "password", Role.admin)
        store.find_by_id(user.id)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, hasher: CredentialHasher | None = None) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        self.hasher = hasher or CredentialHasher()
        self._lock = threading.RLock()
        with _storage_errors():
            _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_id(self, user_id: int) -> PublicUser:
        """Return the sanitized user with this id. Raises NotFound if absent."""
        return PublicUser.from_user(self._get(user_id))

    def find_by_email(self, email: str) -> User:
        """Return the full User (with password_hash) for an exact email match.

        Only AuthService should call this. Raises NotFound if absent.
        """
        with _storage_errors(), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        if row is None:
            raise NotFound(f"User with email {email} not found")
        return _row_to_user(row)

    def list_users(self) -> list[PublicUser]:
        """Return every user in insertion order."""
        with _storage_errors(), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [PublicUser.from_user(_row_to_user(r)) for r in rows]

    def count(self) -> int:
        with _storage_errors(), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def has_users(self) -> bool:
        return self.count() > 0

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, name: str, email: str, password: str, role: Role | str | None = None) -> PublicUser:
        """Insert a new user and return its sanitized view.

        Raises Conflict if the email is taken, InvalidInput on blank fields or
        an unknown role. The password is hashed before it reaches the database.
        """
        name = _require_text(name, "name")
        email = _require_text(email, "email")
        role = _coerce_role(role)
        password_hash = self.hasher.hash(password)
        now = _now_iso()

        with self._lock, _storage_errors(email), self.engine.begin() as conn:
            taken = conn.execute(select(_users.c.id).where(_users.c.email == email)).fetchone()
            if taken is not None:
                raise Conflict(f"User with email {email} already exists")
            result = conn.execute(
                _users.insert().values(
                    name=name,
                    email=email,
                    password_hash=password_hash,
                    role=role.value,
                    created_at=now,
                    updated_at=now,
                )
            )
            user_id = result.inserted_primary_key[0]

        logger.info("Created user id=%s role=%s", user_id, role.value)
        return PublicUser(id=user_id, name=name, email=email, role=role, created_at=now, updated_at=now)

    def update(
        self,
        user_id: int,
        *,
        name: str | None = None,
        email: str | None = None,
        password: str | None = None,
        role: Role | str | None = None,
    ) -> PublicUser:
        """Apply a partial update and return the sanitized result.

        Fields left as None are unchanged. Resubmitting the current email is
        not a conflict. A new password is rehashed. updated_at is refreshed
        on every call, even when no field changes.

        Raises NotFound, Conflict, or InvalidInput.
        """
        values: dict = {}
        if name is not None:
            values["name"] = _require_text(name, "name")
        if email is not None:
            values["email"] = _require_text(email, "email")
        if role is not None:
            values["role"] = _coerce_role(role).value
        if password is not None:
            values["password_hash"] = self.hasher.hash(password)
        values["updated_at"] = _now_iso()

        with self._lock, _storage_errors(email), self.engine.begin() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                raise NotFound(f"User with ID {user_id} not found")
            if email is not None and email != row.email:
                taken = conn.execute(select(_users.c.id).where(_users.c.email == email)).fetchone()
                if taken is not None:
                    raise Conflict(f"User with email {email} already exists")
            conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()

        logger.info("Updated user id=%s fields=%s", user_id, sorted(k for k in values if k != "updated_at"))
        return PublicUser.from_user(_row_to_user(row))

    def remove(self, user_id: int) -> PublicUser:
        """Delete a user and return the removed record. Raises NotFound if absent."""
        with self._lock, _storage_errors(), self.engine.begin() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                raise NotFound(f"User with ID {user_id} not found")
            conn.execute(_users.delete().where(_users.c.id == user_id))

        logger.info("Removed user id=%s", user_id)
        return PublicUser.from_user(_row_to_user(row))

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _get(self, user_id: int) -> User:
        with _storage_errors(), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        if row is None:
            raise NotFound(f"User with ID {user_id} not found")
        return _row_to_user(row)


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role=Role(row.role),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

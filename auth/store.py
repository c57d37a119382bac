"""
auth/store.py -- User persistence: the repository contract and its SQL adapter.

Pattern: Repository + Data Mapper.
UserRepository is the contract the services depend on (a typing.Protocol, so
any object with the right methods satisfies it -- tests use the real SQL store
or a small fake). UserStore implements it over SQLAlchemy Core;
_row_to_user is the mapper. Service code never touches SQL directly.

Contract signals:
  NotFound      -- get_by_* return None.
  AlreadyExists -- create_user / update_user raise DuplicateUserError(field).

Uniqueness:
  username, phone and email carry UNIQUE constraints. They are the only real
  guarantee: the services' pre-checks are a check-then-act race. email is
  nullable and SQL treats NULLs as distinct, so any number of accounts may
  have no email while a present email stays unique.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import UserAccount
from auth.permissions import Permission, Role

logger = logging.getLogger("icafe.store")

# Columns carrying a UNIQUE constraint, checked in this order when decoding
# a driver's integrity error message.
_UNIQUE_FIELDS = ("username", "phone", "email")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("phone", String(15), nullable=False, unique=True),
    Column("email", String(255), unique=True),  # NULL allowed, never duplicated
    Column("hashed_password", Text, nullable=False),
    Column("full_name", String(100), nullable=False),
    Column("role", String(20), nullable=False, server_default="customer"),
    Column("custom_permissions", Text, nullable=False, server_default="[]"),  # JSON list
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("modified_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

# Fields update_user() accepts. Anything else is a programming error.
_UPDATABLE = frozenset(
    {"email", "phone", "full_name", "role", "is_active", "custom_permissions", "hashed_password"}
)


class DuplicateUserError(Exception):
    """A write violated a UNIQUE constraint. field names the offending column."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"duplicate value for {field}")


class UserRepository(Protocol):
    """Capability set the auth services need from persistence."""

    def get_by_id(self, user_id: int) -> UserAccount | None: ...

    def get_by_username(self, username: str) -> UserAccount | None: ...

    def get_by_phone(self, phone: str) -> UserAccount | None: ...

    def get_by_email(self, email: str) -> UserAccount | None: ...

    def create_user(self, user: UserAccount) -> int: ...

    def update_user(self, user_id: int, **fields) -> bool: ...

    def update_last_login(self, user_id: int) -> None: ...

    def list_users(self, limit: int = 10, offset: int = 0) -> list[UserAccount]: ...

    def count_users(self) -> int: ...

    def delete_user(self, user_id: int) -> bool: ...

    def has_users(self) -> bool: ...


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


def _duplicate_field(exc: IntegrityError) -> str | None:
    """Name the UNIQUE column an IntegrityError refers to, or None.

    SQLite reports "UNIQUE constraint failed: users.phone"; PostgreSQL names
    the constraint ("users_phone_key") and the key ("Key (phone)=..."). Both
    contain the column name. None means some other constraint (NOT NULL,
    CHECK) failed; callers re-raise the original error.
    """
    message = str(exc.orig) if exc.orig is not None else str(exc)
    if "unique" not in message.lower():
        return None
    for name in _UNIQUE_FIELDS:
        if f"users.{name}" in message or f"users_{name}" in message or f"({name})" in message:
            return name
    return None


def _raise_duplicate(exc: IntegrityError) -> None:
    field = _duplicate_field(exc)
    if field is not None:
        raise DuplicateUserError(field) from exc


def _encode_permissions(perms) -> str:
    return json.dumps(sorted(Permission(p).value for p in perms))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """SQLAlchemy Core implementation of UserRepository.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(UserAccount(username="alice", phone="0900000001",
                                            full_name="Alice", hashed_password=hash_password("pw")))
        user = store.get_by_username("alice")
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

    def ping(self) -> bool:
        """Round-trip a trivial query. Used by the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        return self.count_users() > 0

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def get_by_id(self, user_id: int) -> UserAccount | None:
        """Look up a user by primary key. Returns None if not found."""
        return self._get_one(_users.c.id == user_id)

    def get_by_username(self, username: str) -> UserAccount | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        return self._get_one(_users.c.username == username)

    def get_by_phone(self, phone: str) -> UserAccount | None:
        return self._get_one(_users.c.phone == phone)

    def get_by_email(self, email: str) -> UserAccount | None:
        return self._get_one(_users.c.email == email)

    def list_users(self, limit: int = 10, offset: int = 0) -> list[UserAccount]:
        """Return users ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id).limit(limit).offset(offset)).fetchall()
        return [_row_to_user(r) for r in rows]

    def _get_one(self, condition) -> UserAccount | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: UserAccount) -> int:
        """Insert a new user and return its assigned database ID.

        Raises DuplicateUserError if username, phone or email is already
        taken -- including when a concurrent request won the race after the
        caller's pre-check passed.
        """
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        phone=user.phone,
                        email=user.email or None,
                        hashed_password=user.hashed_password,
                        full_name=user.full_name,
                        role=Role(user.role).value,
                        custom_permissions=_encode_permissions(user.custom_permissions),
                        is_active=1 if user.is_active else 0,
                        created_at=now,
                        modified_at=now,
                    )
                )
                conn.commit()
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            _raise_duplicate(exc)
            raise

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: email, phone, full_name, role, is_active,
        custom_permissions, hashed_password. Python values are converted to
        their column representation here.

        Returns True if a row was updated, False if user_id was not found.
        Raises DuplicateUserError on a UNIQUE violation.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        values = dict(fields)
        if "is_active" in values:
            values["is_active"] = 1 if values["is_active"] else 0
        if "role" in values:
            values["role"] = Role(values["role"]).value
        if "custom_permissions" in values:
            values["custom_permissions"] = _encode_permissions(values["custom_permissions"])
        if "email" in values:
            values["email"] = values["email"] or None
        values["modified_at"] = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
                conn.commit()
        except IntegrityError as exc:
            _raise_duplicate(exc)
            raise
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login. Last write wins."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> UserAccount:
    return UserAccount(
        id=row.id,
        username=row.username,
        phone=row.phone,
        email=row.email,
        hashed_password=row.hashed_password,
        full_name=row.full_name,
        role=Role(row.role),
        custom_permissions=_decode_permissions(row.custom_permissions, row.id),
        is_active=bool(row.is_active),
        created_at=row.created_at,
        modified_at=row.modified_at,
        last_login=row.last_login,
    )


def _decode_permissions(raw: str | None, user_id: int) -> tuple[Permission, ...]:
    # Unknown entries (e.g. a permission removed from the enum) are dropped so
    # a stale grant can never resolve to something it was not.
    perms: list[Permission] = []
    for value in json.loads(raw or "[]"):
        try:
            perms.append(Permission(value))
        except ValueError:
            logger.warning("Dropping unknown custom permission %r on user %s", value, user_id)
    return tuple(perms)

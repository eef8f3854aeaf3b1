"""
auth/store.py -- SQLAlchemy Core persistence layer for Account records.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper. The verifier
and route code never touch SQL directly.

Concurrency:
  save() on an existing record is a compare-and-swap on the version column:
  UPDATE ... WHERE id = :id AND version = :version. If another request saved
  the same account in between, no row matches and StaleAccountError is
  raised instead of silently overwriting the other writer's counter. The
  caller re-reads and re-applies its change (see CredentialVerifier).

Security:
  All queries use bound parameters. No f-strings in SQL.
  UNIQUE(username) and UNIQUE(email) back the registration pre-checks; a
  concurrent duplicate insert surfaces as sqlalchemy.exc.IntegrityError.

DB path: auth/lockgate_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Connection, Engine

from auth.errors import StaleAccountError
from auth.models import Account, Locked, LockState, Unlocked

logger = logging.getLogger("lockgate.store")

DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'lockgate_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(100), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("enabled", Integer, nullable=False, server_default="1"),
    Column("account_locked", Integer, nullable=False, server_default="0"),
    Column("failed_login_attempts", Integer, nullable=False, server_default="0"),
    Column("last_login", String(32)),  # ISO 8601, NULL until first successful login
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("version", Integer, nullable=False, server_default="1"),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role", String(50), primary_key=True),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account = store.save(Account(username="alice", email="a@x.com", password_hash=h))
        store.find_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str = DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive)."""
        return self._find_one(_users.c.username == username)

    def find_by_email(self, email: str) -> Account | None:
        return self._find_one(_users.c.email == email)

    def find_by_id(self, account_id: int) -> Account | None:
        return self._find_one(_users.c.id == account_id)

    def exists_by_username(self, username: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.username == username)).first()
        return row is not None

    def exists_by_email(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.email == email)).first()
        return row is not None

    def _find_one(self, clause) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(clause)).fetchone()
            if row is None:
                return None
            roles = conn.execute(select(_user_roles.c.role).where(_user_roles.c.user_id == row.id)).scalars().all()
        return _row_to_account(row, roles)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, account: Account) -> Account:
        """Insert or update an account and return the persisted copy.

        New records (id is None) get id, created_at, updated_at and version=1.
        Existing records must carry the version they were read with; the
        returned copy has updated_at refreshed and version incremented.

        Raises StaleAccountError if the stored version no longer matches.
        Raises sqlalchemy.exc.IntegrityError on a username/email collision.
        """
        now = _now()
        with self.engine.connect() as conn:
            if account.id is None:
                saved = self._insert(conn, account, now)
            else:
                saved = self._update(conn, account, now)
            conn.commit()
        return saved

    def _insert(self, conn: Connection, account: Account, now: datetime) -> Account:
        result = conn.execute(
            _users.insert().values(
                username=account.username,
                email=account.email,
                password_hash=account.password_hash,
                enabled=1 if account.enabled else 0,
                **_lock_columns(account.lock_state),
                last_login=_to_iso(account.last_login),
                created_at=now.isoformat(),
                updated_at=now.isoformat(),
                version=1,
            )
        )
        account_id = result.inserted_primary_key[0]
        _write_roles(conn, account_id, account.roles)
        return dataclasses.replace(account, id=account_id, created_at=now, updated_at=now, version=1)

    def _update(self, conn: Connection, account: Account, now: datetime) -> Account:
        # created_at is deliberately absent from the SET list (set once on insert).
        result = conn.execute(
            _users.update()
            .where((_users.c.id == account.id) & (_users.c.version == account.version))
            .values(
                username=account.username,
                email=account.email,
                password_hash=account.password_hash,
                enabled=1 if account.enabled else 0,
                **_lock_columns(account.lock_state),
                last_login=_to_iso(account.last_login),
                updated_at=now.isoformat(),
                version=account.version + 1,
            )
        )
        if result.rowcount == 0:
            conn.rollback()
            logger.info("Stale write rejected for account id=%s version=%s", account.id, account.version)
            raise StaleAccountError(f"Account {account.id} changed since version {account.version}.")
        conn.execute(_user_roles.delete().where(_user_roles.c.user_id == account.id))
        _write_roles(conn, account.id, account.roles)
        return dataclasses.replace(account, updated_at=now, version=account.version + 1)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _lock_columns(state: LockState) -> dict:
    return {
        "account_locked": 1 if isinstance(state, Locked) else 0,
        "failed_login_attempts": state.failed_attempts,
    }


def _write_roles(conn: Connection, account_id: int, roles: frozenset[str]) -> None:
    if roles:
        conn.execute(_user_roles.insert(), [{"user_id": account_id, "role": r} for r in sorted(roles)])


def _row_to_account(row, roles) -> Account:
    attempts = row.failed_login_attempts
    lock_state: LockState = Locked(attempts) if row.account_locked else Unlocked(attempts)
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        roles=frozenset(roles),
        enabled=bool(row.enabled),
        lock_state=lock_state,
        last_login=_from_iso(row.last_login),
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
        version=row.version,
    )

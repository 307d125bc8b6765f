"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as records/store.py).
AccountStore and SessionStore are the repositories; _row_to_account /
_row_to_session are the mappers. Services and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Sessions are keyed by token hash; the raw token never reaches this module.

Concurrency:
  Lockout counters are written with compare_and_set_counters(), a single
  UPDATE guarded by the row's version column. The database serializes the
  UPDATE, so the guard holds across threads and across processes sharing the
  same database -- no in-process lock is involved.

Layer rule: no imports from api/ or records/.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, func, select, text
from sqlalchemy.engine import Engine

from auth.models import Account, Session
from core.config import get_settings
from core.db import from_iso, make_engine, storage_guard, to_iso, utcnow

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # normalized, see normalize_email()
    Column("password_hash", Text, nullable=False),
    Column("failed_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),  # ISO 8601 UTC, NULL = not locked
    Column("version", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("last_login_at", String(32)),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # HMAC-SHA256 hex
    Column("account_id", Integer, nullable=False, index=True),
    Column("issued_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("remember_me", Boolean, nullable=False, server_default="0"),
)


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup (case-insensitive match)."""
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Account repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore()
        account_id = store.create_account(Account(email="a@example.com", password_hash=hash_password("secret")))
        account = store.get_by_email("A@Example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        with storage_guard("schema setup"):
            _metadata.create_all(self.engine, tables=[_accounts])

    def ping(self) -> None:
        """Run a trivial query. Raises UnavailableError if the database is unreachable."""
        with storage_guard("ping"), self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        CredentialVerifier.create_account() turns that into DuplicateAccountError.
        """
        with storage_guard("account insert"), self.engine.begin() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    email=normalize_email(account.email),
                    password_hash=account.password_hash,
                    failed_attempts=0,
                    locked_until=None,
                    version=0,
                    created_at=to_iso(account.created_at or utcnow()),
                )
            )
            return result.inserted_primary_key[0]

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with storage_guard("account lookup"), self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email, case-insensitively. Returns None if not found."""
        with storage_guard("account lookup"), self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def compare_and_set_counters(
        self,
        account_id: int,
        expected_version: int,
        *,
        failed_attempts: int,
        locked_until: datetime | None,
        last_login_at: datetime | None = None,
    ) -> bool:
        """Write lockout state only if the row still has expected_version.

        Returns True when the update committed, False when another writer got
        there first (the caller re-reads and re-evaluates). last_login_at is
        only written when given.
        """
        values: dict = {
            "failed_attempts": failed_attempts,
            "locked_until": to_iso(locked_until),
            "version": _accounts.c.version + 1,
        }
        if last_login_at is not None:
            values["last_login_at"] = to_iso(last_login_at)
        with storage_guard("account counter update"), self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.version == expected_version))
                .values(**values)
            )
        return result.rowcount == 1

    def update_password(self, account_id: int, password_hash: str) -> bool:
        """Replace the password hash and clear lockout state.

        Returns True if a row was updated, False if account_id was not found.
        """
        with storage_guard("password update"), self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(
                    password_hash=password_hash,
                    failed_attempts=0,
                    locked_until=None,
                    version=_accounts.c.version + 1,
                )
            )
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Session rows, keyed by token hash."""

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        with storage_guard("schema setup"):
            _metadata.create_all(self.engine, tables=[_sessions])

    def create(self, session: Session) -> None:
        with storage_guard("session insert"), self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    token_hash=session.token_hash,
                    account_id=session.account_id,
                    issued_at=to_iso(session.issued_at),
                    expires_at=to_iso(session.expires_at),
                    remember_me=session.remember_me,
                )
            )

    def get(self, token_hash: str) -> Session | None:
        with storage_guard("session lookup"), self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete(self, token_hash: str) -> bool:
        with storage_guard("session delete"), self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token_hash == token_hash))
        return result.rowcount > 0

    def delete_for_account(self, account_id: int) -> int:
        with storage_guard("session delete"), self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.account_id == account_id))
        return result.rowcount

    def delete_expired(self, now: datetime) -> int:
        """Delete every session with expires_at <= now. Returns number of rows removed.

        Relies on the fixed-width ISO format written by to_iso(): string order
        equals chronological order.
        """
        with storage_guard("session purge"), self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= to_iso(now)))
        return result.rowcount

    def count_active(self, account_id: int, now: datetime) -> int:
        """Count the account's sessions still live at now (expires_at > now)."""
        query = (
            select(func.count())
            .select_from(_sessions)
            .where((_sessions.c.account_id == account_id) & (_sessions.c.expires_at > to_iso(now)))
        )
        with storage_guard("session count"), self.engine.connect() as conn:
            return conn.execute(query).scalar_one()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        failed_attempts=row.failed_attempts,
        locked_until=from_iso(row.locked_until),
        version=row.version,
        created_at=from_iso(row.created_at),
        last_login_at=from_iso(row.last_login_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        token_hash=row.token_hash,
        account_id=row.account_id,
        issued_at=from_iso(row.issued_at),
        expires_at=from_iso(row.expires_at),
        remember_me=bool(row.remember_me),
    )

"""Unit tests for auth/store.py -- account persistence and the version guard.

Covers:
- email normalization and case-insensitive uniqueness
- compare_and_set_counters() commits only against the current version
- update_password() clears lockout state
- storage failures surface as UnavailableError
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Account
from auth.store import AccountStore, normalize_email
from core.errors import UnavailableError


def _make(accounts: AccountStore, email: str = "Carol@Example.com") -> int:
    return accounts.create_account(Account(email=email, password_hash="$2b$04$placeholder"))


def test_normalize_email():
    assert normalize_email("  Carol@Example.COM ") == "carol@example.com"


def test_email_stored_normalized_and_unique(accounts):
    account_id = _make(accounts)
    assert accounts.get_by_id(account_id).email == "carol@example.com"
    assert accounts.get_by_email("CAROL@example.com").id == account_id
    with pytest.raises(IntegrityError):
        _make(accounts, "carol@EXAMPLE.com")


def test_new_account_starts_clean(accounts):
    account = accounts.get_by_id(_make(accounts))
    assert account.failed_attempts == 0
    assert account.locked_until is None
    assert account.version == 0
    assert account.created_at is not None


def test_missing_account_lookups_return_none(accounts):
    assert accounts.get_by_id(404) is None
    assert accounts.get_by_email("nobody@example.com") is None


def test_compare_and_set_rejects_stale_version(accounts):
    account_id = _make(accounts)
    locked_until = datetime(2030, 1, 1, tzinfo=timezone.utc)

    assert accounts.compare_and_set_counters(account_id, 0, failed_attempts=1, locked_until=None)
    # A second writer still holding version 0 must lose.
    assert not accounts.compare_and_set_counters(account_id, 0, failed_attempts=1, locked_until=None)
    assert accounts.compare_and_set_counters(account_id, 1, failed_attempts=2, locked_until=locked_until)

    account = accounts.get_by_id(account_id)
    assert account.failed_attempts == 2
    assert account.locked_until == locked_until
    assert account.version == 2


def test_update_password_clears_lockout(accounts):
    account_id = _make(accounts)
    accounts.compare_and_set_counters(
        account_id, 0, failed_attempts=5, locked_until=datetime.now(timezone.utc) + timedelta(minutes=15)
    )
    assert accounts.update_password(account_id, "$2b$04$another") is True

    account = accounts.get_by_id(account_id)
    assert account.password_hash == "$2b$04$another"
    assert account.failed_attempts == 0
    assert account.locked_until is None
    assert account.version == 2


def test_update_password_unknown_account(accounts):
    assert accounts.update_password(404, "$2b$04$x") is False


def test_unreachable_database_raises_unavailable(tmp_path):
    # A directory path cannot be opened as a SQLite database file.
    with pytest.raises(UnavailableError):
        AccountStore(f"sqlite:///{tmp_path}").ping()

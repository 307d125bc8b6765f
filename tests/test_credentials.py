"""Unit tests for auth/credentials.py -- sign-in verification and lockout.

Covers:
- Accept / reject on known and unknown emails (same rejection kind)
- Case-insensitive email lookup
- Five wrong passwords: four INVALID_CREDENTIALS then LOCKED; a sixth is
  LOCKED without touching the counter
- Success resets the counter (next failure counts as #1)
- Elapsed lock resets the counter on the next attempt
- Newly imposed lockout revokes the account's sessions
- set_password clears lockout, revokes sessions, raises NotFoundError
- Concurrent wrong passwords never lose an increment
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from auth.credentials import CredentialVerifier
from auth.models import VerifyOutcome
from core.errors import DuplicateAccountError, NotFoundError

EMAIL = "alice@example.com"
PASSWORD = "correct horse"
WRONG = "battery staple"


@pytest.fixture
def account_id(verifier):
    return verifier.create_account(EMAIL, PASSWORD)


# ---------------------------------------------------------------------------
# Basic verification
# ---------------------------------------------------------------------------


def test_correct_password_is_accepted(verifier, account_id):
    result = verifier.verify(EMAIL, PASSWORD)
    assert result.outcome is VerifyOutcome.ACCEPTED
    assert result.accepted
    assert result.account_id == account_id


def test_email_lookup_is_case_insensitive(verifier, account_id):
    result = verifier.verify("  ALICE@Example.COM ", PASSWORD)
    assert result.account_id == account_id


def test_unknown_email_and_wrong_password_report_the_same_kind(verifier, account_id):
    unknown = verifier.verify("nobody@example.com", PASSWORD)
    wrong = verifier.verify(EMAIL, WRONG)
    assert unknown.outcome is VerifyOutcome.INVALID_CREDENTIALS
    assert wrong.outcome is VerifyOutcome.INVALID_CREDENTIALS
    assert unknown.account_id is None and wrong.account_id is None


def test_duplicate_email_is_rejected_case_insensitively(verifier, account_id):
    with pytest.raises(DuplicateAccountError):
        verifier.create_account("Alice@Example.com", "another password")


def test_success_stamps_last_login(verifier, accounts, account_id, clock):
    verifier.verify(EMAIL, PASSWORD)
    assert accounts.get_by_id(account_id).last_login_at == clock.now


# ---------------------------------------------------------------------------
# Lockout
# ---------------------------------------------------------------------------


def test_fifth_failure_locks_and_sixth_does_not_increment(verifier, accounts, account_id, clock):
    outcomes = [verifier.verify(EMAIL, WRONG).outcome for _ in range(4)]
    assert outcomes == [VerifyOutcome.INVALID_CREDENTIALS] * 4

    fifth = verifier.verify(EMAIL, WRONG)
    assert fifth.outcome is VerifyOutcome.LOCKED
    assert fifth.retry_after == clock.now + timedelta(minutes=15)

    sixth = verifier.verify(EMAIL, WRONG)
    assert sixth.outcome is VerifyOutcome.LOCKED
    assert sixth.retry_after == fifth.retry_after
    assert accounts.get_by_id(account_id).failed_attempts == 5


def test_locked_account_refuses_the_correct_password(verifier, account_id):
    for _ in range(5):
        verifier.verify(EMAIL, WRONG)
    assert verifier.verify(EMAIL, PASSWORD).outcome is VerifyOutcome.LOCKED


def test_success_resets_failed_attempts(verifier, accounts, account_id):
    for _ in range(3):
        verifier.verify(EMAIL, WRONG)
    assert accounts.get_by_id(account_id).failed_attempts == 3

    assert verifier.verify(EMAIL, PASSWORD).accepted
    assert accounts.get_by_id(account_id).failed_attempts == 0

    verifier.verify(EMAIL, WRONG)
    assert accounts.get_by_id(account_id).failed_attempts == 1


def test_elapsed_lock_resets_counter_on_next_attempt(verifier, accounts, account_id, clock):
    for _ in range(5):
        verifier.verify(EMAIL, WRONG)
    clock.advance(minutes=15, seconds=1)

    result = verifier.verify(EMAIL, WRONG)
    assert result.outcome is VerifyOutcome.INVALID_CREDENTIALS
    account = accounts.get_by_id(account_id)
    assert account.failed_attempts == 1
    assert account.locked_until is None


def test_elapsed_lock_allows_correct_password(verifier, accounts, account_id, clock):
    for _ in range(5):
        verifier.verify(EMAIL, WRONG)
    clock.advance(minutes=16)
    assert verifier.verify(EMAIL, PASSWORD).accepted
    account = accounts.get_by_id(account_id)
    assert account.failed_attempts == 0
    assert account.locked_until is None


def test_new_lockout_revokes_existing_sessions(verifier, issuer, account_id):
    token = issuer.issue(account_id)
    assert issuer.validate(token) == account_id

    for _ in range(5):
        verifier.verify(EMAIL, WRONG)
    assert issuer.validate(token) is None


def test_lockout_keeps_sessions_when_policy_disabled(accounts, issuer, clock):
    lenient = CredentialVerifier(
        accounts, issuer, max_attempts=2, revoke_sessions_on_lockout=False, clock=clock
    )
    account_id = lenient.create_account("bob@example.com", PASSWORD)
    token = issuer.issue(account_id)
    lenient.verify("bob@example.com", WRONG)
    assert lenient.verify("bob@example.com", WRONG).outcome is VerifyOutcome.LOCKED
    assert issuer.validate(token) == account_id


# ---------------------------------------------------------------------------
# set_password
# ---------------------------------------------------------------------------


def test_set_password_clears_lockout_and_sessions(verifier, accounts, issuer, account_id):
    for _ in range(5):
        verifier.verify(EMAIL, WRONG)
    token = issuer.issue(account_id)

    verifier.set_password(account_id, "brand new secret")

    account = accounts.get_by_id(account_id)
    assert account.failed_attempts == 0
    assert account.locked_until is None
    assert issuer.validate(token) is None
    assert verifier.verify(EMAIL, "brand new secret").accepted
    assert verifier.verify(EMAIL, PASSWORD).outcome is VerifyOutcome.INVALID_CREDENTIALS


def test_set_password_unknown_account_raises(verifier):
    with pytest.raises(NotFoundError):
        verifier.set_password(9999, "whatever123")


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def _burst(verifier: CredentialVerifier, email: str, password: str, workers: int) -> list[VerifyOutcome]:
    """Fire `workers` verify() calls that start at the same instant."""
    barrier = threading.Barrier(workers)

    def attempt(_):
        barrier.wait()
        return verifier.verify(email, password).outcome

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(attempt, range(workers)))


def test_concurrent_failures_are_all_counted(accounts, issuer):
    # Threshold above the burst size: every attempt must land as an increment.
    tolerant = CredentialVerifier(accounts, issuer, max_attempts=100)
    account_id = tolerant.create_account("burst@example.com", PASSWORD)

    outcomes = _burst(tolerant, "burst@example.com", WRONG, workers=8)

    assert outcomes == [VerifyOutcome.INVALID_CREDENTIALS] * 8
    assert accounts.get_by_id(account_id).failed_attempts == 8


def test_concurrent_failures_stop_counting_at_threshold(accounts, issuer):
    strict = CredentialVerifier(accounts, issuer, max_attempts=5)
    account_id = strict.create_account("burst2@example.com", PASSWORD)

    outcomes = _burst(strict, "burst2@example.com", WRONG, workers=10)

    assert outcomes.count(VerifyOutcome.INVALID_CREDENTIALS) == 4
    assert outcomes.count(VerifyOutcome.LOCKED) == 6
    account = accounts.get_by_id(account_id)
    assert account.failed_attempts == 5
    assert account.locked_until is not None

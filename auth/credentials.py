"""
auth/credentials.py -- Password verification with failed-attempt lockout.

CredentialVerifier owns the sign-in decision:

  1. Unknown email        -> INVALID_CREDENTIALS (bcrypt still runs against a
                             dummy hash so timing does not leak existence).
  2. locked_until > now   -> LOCKED(retry_after); the password is not checked
                             and the counter is not touched.
  3. Otherwise bcrypt compares the password, then the counters are written
     with a compare-and-swap on Account.version:
       match    -> failed_attempts=0, locked_until=None, ACCEPTED
       mismatch -> failed_attempts+1; at max_attempts locked_until is set
                   and the result is LOCKED, else INVALID_CREDENTIALS.
     A lock that has already elapsed resets the counter to 0 before the
     attempt is counted.

The CAS loop re-reads the row whenever another worker committed first, so
N concurrent wrong passwords produce exactly N increments (until the
account locks). The bcrypt comparison happens once, outside the loop.

Layer rule: no imports from api/ or records/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from auth.models import Account, VerifyResult
from auth.tokens import burn_password_check, hash_password, verify_password
from core.config import get_settings
from core.db import utcnow
from core.errors import DuplicateAccountError, NotFoundError

if TYPE_CHECKING:
    from auth.sessions import SessionIssuer
    from auth.store import AccountStore

logger = logging.getLogger("healthtrack.auth")


class CredentialVerifier:
    """Verify sign-in attempts against stored credentials and maintain lockout state.

    sessions is optional so the verifier can run without a session layer
    (e.g. in the CLI); when given, set_password() and newly imposed lockouts
    revoke the account's sessions.
    """

    def __init__(
        self,
        accounts: AccountStore,
        sessions: SessionIssuer | None = None,
        *,
        max_attempts: int | None = None,
        lockout_window: timedelta | None = None,
        revoke_sessions_on_lockout: bool | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = get_settings()
        self.accounts = accounts
        self.sessions = sessions
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_login_attempts
        self.lockout_window = (
            lockout_window if lockout_window is not None else timedelta(seconds=settings.lockout_window_seconds)
        )
        self.revoke_sessions_on_lockout = (
            revoke_sessions_on_lockout
            if revoke_sessions_on_lockout is not None
            else settings.revoke_sessions_on_lockout
        )
        self._clock = clock

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def create_account(self, email: str, password: str) -> int:
        """Register a new account and return its id.

        Raises DuplicateAccountError if the email (case-insensitive) is taken.
        """
        account = Account(email=email, password_hash=hash_password(password), created_at=self._clock())
        try:
            account_id = self.accounts.create_account(account)
        except IntegrityError as exc:
            raise DuplicateAccountError("An account with that email already exists.") from exc
        logger.info("Account %s created", account_id)
        return account_id

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def verify(self, email: str, password: str) -> VerifyResult:
        """Check a sign-in attempt and update the lockout counters.

        Mutates persisted state on every call for a known account; callers
        must not retry it blindly after an UnavailableError.
        """
        account = self.accounts.get_by_email(email)
        if account is None:
            burn_password_check(password)
            return VerifyResult.invalid()

        now = self._clock()
        if account.is_locked(now):
            return VerifyResult.locked(account.locked_until)

        matched = verify_password(password, account.password_hash)

        while True:
            now = self._clock()
            if account.is_locked(now):
                # Another worker locked the account after our first read.
                return VerifyResult.locked(account.locked_until)

            if matched:
                committed = self.accounts.compare_and_set_counters(
                    account.id,
                    account.version,
                    failed_attempts=0,
                    locked_until=None,
                    last_login_at=now,
                )
                if committed:
                    return VerifyResult.accept(account.id)
            else:
                # An elapsed lock starts the count again from zero.
                base = 0 if account.locked_until is not None else account.failed_attempts
                failed = base + 1
                locked_until = now + self.lockout_window if failed >= self.max_attempts else None
                committed = self.accounts.compare_and_set_counters(
                    account.id,
                    account.version,
                    failed_attempts=failed,
                    locked_until=locked_until,
                )
                if committed:
                    if locked_until is not None:
                        self._on_lockout(account.id, locked_until)
                        return VerifyResult.locked(locked_until)
                    logger.info("Failed sign-in for account %s", account.id)
                    return VerifyResult.invalid()

            account = self.accounts.get_by_id(account.id)
            if account is None:
                # Deleted between reads; report like an unknown email.
                return VerifyResult.invalid()

    def _on_lockout(self, account_id: int, locked_until: datetime) -> None:
        logger.warning("Account %s locked until %s", account_id, locked_until.isoformat())
        if self.sessions is not None and self.revoke_sessions_on_lockout:
            revoked = self.sessions.revoke_all(account_id)
            if revoked:
                logger.info("Revoked %d session(s) for locked account %s", revoked, account_id)

    # ------------------------------------------------------------------
    # Password changes
    # ------------------------------------------------------------------

    def set_password(self, account_id: int, new_password: str) -> None:
        """Replace the account's password and clear its lockout state.

        Raises NotFoundError if the account does not exist. Existing sessions
        are revoked when a session issuer is attached.
        """
        if not self.accounts.update_password(account_id, hash_password(new_password)):
            raise NotFoundError(f"Account {account_id} not found.")
        logger.info("Password changed for account %s", account_id)
        if self.sessions is not None:
            self.sessions.revoke_all(account_id)

"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in records/models.py -- dataclasses own domain shape; stores and services
do the work.

Layer rule: no imports from api/ or records/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass
class Account:
    """A registered identity that can sign in with email and password.

    email is always stored normalized (stripped, lower-cased), which is what
    makes the UNIQUE constraint case-insensitive.

    version is the compare-and-swap token for the lockout counters. Every
    write to failed_attempts / locked_until bumps it, so two workers that
    read the same row cannot both commit an update derived from it.
    """

    email: str
    password_hash: str
    id: int | None = None
    failed_attempts: int = 0
    locked_until: datetime | None = None
    version: int = 0
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


@dataclass
class Session:
    """A server-side sign-in session.

    Only token_hash is persisted; the raw token is handed to the client once
    by SessionIssuer.issue() and never stored.
    """

    token_hash: str
    account_id: int
    issued_at: datetime
    expires_at: datetime
    remember_me: bool = False


class VerifyOutcome(str, Enum):
    ACCEPTED = "accepted"
    INVALID_CREDENTIALS = "invalid_credentials"
    LOCKED = "locked"


@dataclass(frozen=True)
class VerifyResult:
    """Result of CredentialVerifier.verify().

    Unknown email and wrong password both produce INVALID_CREDENTIALS so the
    result never reveals whether an account exists. LOCKED carries only the
    time at which sign-in may be retried, never the attempt counter.
    """

    outcome: VerifyOutcome
    account_id: int | None = None
    retry_after: datetime | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome is VerifyOutcome.ACCEPTED

    @classmethod
    def accept(cls, account_id: int) -> VerifyResult:
        return cls(VerifyOutcome.ACCEPTED, account_id=account_id)

    @classmethod
    def invalid(cls) -> VerifyResult:
        return cls(VerifyOutcome.INVALID_CREDENTIALS)

    @classmethod
    def locked(cls, retry_after: datetime) -> VerifyResult:
        return cls(VerifyOutcome.LOCKED, retry_after=retry_after)

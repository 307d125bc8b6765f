"""
auth/sessions.py -- Opaque server-side session tokens.

SessionIssuer mints a random token per successful sign-in, stores only its
HMAC, and resolves presented tokens back to an account id. Expiry is fixed at
issue time: validate() never slides expires_at forward.

The token is always passed in explicitly. Nothing here reads request or
thread-local state.

Layer rule: no imports from api/ or records/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from auth.models import Session
from auth.tokens import generate_session_token, hash_session_token
from core.config import get_settings
from core.db import utcnow

if TYPE_CHECKING:
    from auth.store import SessionStore

logger = logging.getLogger("healthtrack.auth.sessions")


class SessionIssuer:
    """Issue, validate, and revoke sessions.

    Usage:
        issuer = SessionIssuer(SessionStore())
        token = issuer.issue(account_id, remember_me=True)
        issuer.validate(token)   # -> account_id, or None once expired / revoked
        issuer.revoke(token)
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        short_ttl: timedelta | None = None,
        long_ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.short_ttl = short_ttl if short_ttl is not None else timedelta(seconds=settings.session_short_ttl_seconds)
        self.long_ttl = long_ttl if long_ttl is not None else timedelta(seconds=settings.session_long_ttl_seconds)
        self._clock = clock

    def ttl_for(self, remember_me: bool) -> timedelta:
        return self.long_ttl if remember_me else self.short_ttl

    def issue(self, account_id: int, remember_me: bool = False) -> str:
        """Create a session for account_id and return the raw token.

        The raw token is returned exactly once; only its hash is stored.
        """
        raw_token = generate_session_token()
        issued_at = self._clock()
        self.store.create(
            Session(
                token_hash=hash_session_token(raw_token),
                account_id=account_id,
                issued_at=issued_at,
                expires_at=issued_at + self.ttl_for(remember_me),
                remember_me=remember_me,
            )
        )
        logger.info("Session issued for account %s (remember_me=%s)", account_id, remember_me)
        return raw_token

    def get(self, raw_token: str) -> Session | None:
        """Return the live Session for raw_token, or None.

        An expired session is indistinguishable from an absent one and is
        deleted on sight.
        """
        if not raw_token:
            return None
        token_hash = hash_session_token(raw_token)
        session = self.store.get(token_hash)
        if session is None:
            return None
        if session.expires_at <= self._clock():
            self.store.delete(token_hash)
            return None
        return session

    def validate(self, raw_token: str) -> int | None:
        """Return the owning account id, or None for an unknown or expired token."""
        session = self.get(raw_token)
        return session.account_id if session is not None else None

    def revoke(self, raw_token: str) -> None:
        """Delete the session. Idempotent: unknown tokens are ignored."""
        if raw_token:
            self.store.delete(hash_session_token(raw_token))

    def revoke_all(self, account_id: int) -> int:
        """Delete every session of account_id. Returns the number removed."""
        return self.store.delete_for_account(account_id)

    def count_active(self, account_id: int) -> int:
        """Number of unexpired sessions held by account_id."""
        return self.store.count_active(account_id, self._clock())

    def purge_expired(self) -> int:
        """Bulk-delete expired sessions. Returns the number removed."""
        removed = self.store.delete_expired(self._clock())
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed

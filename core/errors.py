"""
core/errors.py -- Exceptions shared by the auth and records layers.

Only conditions that abort an operation are exceptions. Expected outcomes
(wrong password, locked account, unknown session, missing record) are
returned as values -- VerifyResult, None -- so callers handle them without
try/except.

Layer rule: core/ is the kernel. No imports from api/, auth/, or records/.
"""


class HealthTrackError(Exception):
    """Base class for all HealthTrack errors."""


class UnavailableError(HealthTrackError):
    """The storage backend failed or timed out.

    The only retryable kind. Idempotent reads may be retried; verify() must
    not be, since the failed attempt may or may not have been counted.
    """


class NotFoundError(HealthTrackError, LookupError):
    """A mutating operation targeted an account that does not exist."""


class DuplicateAccountError(HealthTrackError):
    """An account with the same (case-insensitive) email already exists."""

"""
auth/tokens.py -- Password hashing, session token, and cookie utilities.

Security design decisions:
  Passwords: bcrypt, used directly. Bcrypt is the right choice for
       low-entropy secrets (passwords) because its cost factor makes brute-force
       expensive. bcrypt.checkpw() compares digests in constant time. The
       _DUMMY_HASH constant enables timing equalization in
       CredentialVerifier.verify() so response time does not reveal whether an
       email is registered.

  Session tokens: secrets.token_urlsafe(32) gives 256 bits of entropy --
       brute-force is computationally infeasible. We store
       HMAC-SHA256(SECRET_KEY, raw_token) so lookup is O(1) and a leaked
       sessions table cannot be replayed without also knowing SECRET_KEY.
       bcrypt's intentional slowness is unnecessary for random tokens.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup: dev mode (DEBUG=true) auto-generates a
       random key with a warning; production mode refuses to start without one.

Layer rule: no imports from api/ or records/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

import bcrypt

from core.config import get_settings

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

SESSION_COOKIE = "session_token"

# bcrypt only reads the first 72 bytes of its input, and recent releases
# refuse anything longer. The limit is in UTF-8 bytes, not characters.
PASSWORD_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def password_too_long(plain: str) -> bool:
    """True if plain encodes to more than PASSWORD_MAX_BYTES of UTF-8."""
    return len(plain.encode("utf-8")) > PASSWORD_MAX_BYTES


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError for an empty password or one longer than
    PASSWORD_MAX_BYTES once encoded. The API layer rejects both with 422
    before they get here.
    """
    if not plain:
        raise ValueError("Password must be a non-empty string.")
    if password_too_long(plain):
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded.")
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Inputs past PASSWORD_MAX_BYTES never match: no stored hash was made from one.
    """
    if not plain or not hashed or password_too_long(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. verify() checks this hash when the email is not
# registered, so unknown and known emails cost the same bcrypt work.
_DUMMY_HASH: str = hash_password("healthtrack_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt comparison without a real account to compare against."""
    verify_password(plain or "x", _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def generate_session_token() -> str:
    """Generate a new opaque session token (43 URL-safe chars, 256 bits)."""
    return secrets.token_urlsafe(32)


def hash_session_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string.

    Deterministic, so the sessions table can be looked up by hash directly.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": cookie not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the session expiry so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=max_age,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax", secure=_settings.secure_cookies)

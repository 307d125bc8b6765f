"""Unit tests for core/config.py -- Settings validation.

Settings() is constructed directly (not via get_settings()) so each test can
control the environment without disturbing the cached singleton.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_debug_mode_generates_secret_key(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    settings = Settings(debug=True)
    assert len(settings.secret_key) >= 32


def test_production_mode_requires_secret_key(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False)


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="too-short")


def test_lockout_defaults():
    settings = Settings(debug=True, secret_key="x" * 32, bcrypt_rounds=12)
    assert settings.max_login_attempts == 5
    assert settings.lockout_window_seconds == 15 * 60
    assert settings.session_short_ttl_seconds == 30 * 60
    assert settings.session_long_ttl_seconds == 30 * 24 * 60 * 60
    assert settings.revoke_sessions_on_lockout is True


def test_long_ttl_shorter_than_short_ttl_rejected():
    with pytest.raises(ValidationError):
        Settings(debug=True, secret_key="x" * 32, session_short_ttl_seconds=600, session_long_ttl_seconds=60)

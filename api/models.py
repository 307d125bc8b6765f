"""
API request and response models for HealthTrack REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
records/models.py, which own the internal domain representation. Route
handlers map between the two.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.tokens import PASSWORD_MAX_BYTES, password_too_long
from records.models import HealthRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# PASSWORD_MAX_LENGTH counts characters; the byte limit bcrypt imposes is
# checked separately by _check_password_bytes below.
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = PASSWORD_MAX_BYTES


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


def _check_password_bytes(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded.")
    return value


class _EmailPasswordBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=False)

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("email")
    @classmethod
    def email_shape(cls, value: str) -> str:
        """Minimal shape check; the store normalizes case and whitespace."""
        value = value.strip()
        local, sep, domain = value.partition("@")
        if not sep or not local or "." not in domain:
            raise ValueError("Invalid email address.")
        return value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class RegisterRequest(_EmailPasswordBody):
    """Request body for POST /api/v1/auth/register."""

    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class LoginRequest(_EmailPasswordBody):
    """Request body for POST /api/v1/auth/login."""

    remember_me: bool = False


class PasswordChangeRequest(BaseModel):
    """Request body for POST /api/v1/auth/password."""

    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("current_password", "new_password")
    @classmethod
    def passwords_fit_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: int
    email: str


class LoginResponse(BaseModel):
    """Returned on successful sign-in. session_token is also set as a cookie."""

    model_config = ConfigDict(frozen=True)

    session_token: str
    token_type: str = "bearer"
    expires_in: int
    account_id: int


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: int
    email: str
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    active_sessions: int = 0


# ---------------------------------------------------------------------------
# Health records
# ---------------------------------------------------------------------------


class RecordWrite(BaseModel):
    """Request body for PUT /api/v1/records/me.

    payload is opaque: any JSON object. Measurement names map to whatever the
    client records (typically {"value": ..., "recorded_at": ...}).
    """

    payload: dict[str, Any]


class RecordSaved(BaseModel):
    model_config = ConfigDict(frozen=True)

    updated_at: datetime


class RecordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: int
    payload: dict[str, Any]
    updated_at: datetime

    @classmethod
    def from_record(cls, record: HealthRecord) -> "RecordResponse":
        return cls(account_id=record.account_id, payload=record.payload, updated_at=record.updated_at)

"""
api/routes/v1/auth.py -- Registration, sign-in, and session endpoints.

Routes:
  POST /api/v1/auth/register   -- create an account (if self-registration is on)
  POST /api/v1/auth/login      -- verify credentials; issue session; set cookie
  POST /api/v1/auth/logout     -- revoke the presented session; clear cookie
  GET  /api/v1/auth/me         -- current account info (requires session)
  POST /api/v1/auth/password   -- change password (requires session + current password)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  Unknown email and wrong password return the same "bad_credentials" error.
  A locked account returns 429 with Retry-After; the attempt counter is never exposed.
  Cache-Control: no-store on responses that carry a session token.
  An UnavailableError during verify() is reported as "outcome unknown" --
  the attempt may already have been counted, so clients must not auto-retry.

All handlers are plain `def`: FastAPI runs them in its worker thread pool,
so each request gets its own thread for the blocking store calls.
"""

from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import (
    AccountResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    PasswordChangeRequest,
    RegisterRequest,
)
from auth.credentials import CredentialVerifier
from auth.dependencies import get_current_account, get_session_token
from auth.models import Account, VerifyOutcome, VerifyResult
from auth.sessions import SessionIssuer
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings
from core.db import utcnow
from core.errors import DuplicateAccountError, UnavailableError

logger = logging.getLogger("healthtrack.api.auth")

# Auth policy:
# - POST /api/v1/auth/register:  public -- gated by SELF_REGISTRATION_ENABLED
# - POST /api/v1/auth/login:     public -- rate limited
# - POST /api/v1/auth/logout:    public -- revoking an unknown token is a no-op
# - GET  /api/v1/auth/me:        requires session (get_current_account)
# - POST /api/v1/auth/password:  requires session + current password
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _bad_credentials() -> JSONResponse:
    resp = JSONResponse(
        status_code=401,
        content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _locked(result: VerifyResult) -> JSONResponse:
    """429 response for a locked account: retry time only, no counter."""
    retry_after = result.retry_after
    seconds = max(1, math.ceil((retry_after - utcnow()).total_seconds()))
    resp = JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "account_locked",
                "message": "Too many failed sign-in attempts. Try again later.",
                "detail": retry_after.isoformat(),
            }
        },
    )
    resp.headers["Retry-After"] = str(seconds)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _unusable_password(exc: ValueError) -> HTTPException:
    """422 for a password the hasher refuses (e.g. too many bytes)."""
    return HTTPException(status_code=422, detail={"code": "validation_error", "message": str(exc)})


def _verify_or_unknown(verifier: CredentialVerifier, email: str, password: str) -> VerifyResult:
    try:
        return verifier.verify(email, password)
    except UnavailableError as exc:
        logger.error("Sign-in outcome unknown: storage unavailable")
        raise HTTPException(
            status_code=503,
            detail={
                "code": "unavailable",
                "message": "Sign-in could not be completed; its outcome is unknown. Please try again later.",
            },
        ) from exc


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AccountResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> AccountResponse:
    """Create a new account with email and password."""
    if not get_settings().self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    verifier: CredentialVerifier = request.app.state.verifier
    try:
        account_id = verifier.create_account(body.email, body.password)
    except DuplicateAccountError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "An account with that email already exists."},
        ) from exc
    except ValueError as exc:
        raise _unusable_password(exc) from exc
    account = request.app.state.accounts.get_by_id(account_id)
    return AccountResponse(account_id=account_id, email=account.email)


@limiter.limit(LOGIN_RATE_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify email and password; on success issue a session and set the cookie.

    Returns the same generic error for unknown email and wrong password
    ("bad_credentials") to avoid leaking account existence.
    """
    verifier: CredentialVerifier = request.app.state.verifier
    sessions: SessionIssuer = request.app.state.sessions

    result = _verify_or_unknown(verifier, body.email, body.password)
    if result.outcome is VerifyOutcome.LOCKED:
        return _locked(result)
    if not result.accepted:
        return _bad_credentials()

    token = sessions.issue(result.account_id, remember_me=body.remember_me)
    expires_in = int(sessions.ttl_for(body.remember_me).total_seconds())
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            session_token=token,
            expires_in=expires_in,
            account_id=result.account_id,
        ).model_dump(),
    )
    set_session_cookie(resp, token, max_age=expires_in)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Revoke the presented session (if any) and clear the cookie."""
    token = get_session_token(request)
    if token:
        request.app.state.sessions.revoke(token)
    resp = JSONResponse(content={"message": "Signed out."})
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, current: Account = Depends(get_current_account)) -> MeResponse:
    """Return identity information for the signed-in account."""
    sessions: SessionIssuer = request.app.state.sessions
    return MeResponse(
        account_id=current.id,
        email=current.email,
        created_at=current.created_at,
        last_login_at=current.last_login_at,
        active_sessions=sessions.count_active(current.id),
    )


@router.post("/auth/password")
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    current: Account = Depends(get_current_account),
) -> JSONResponse:
    """Change the password after re-checking the current one.

    The current-password check goes through verify(), so it counts toward
    lockout like any other sign-in attempt. On success every session of the
    account is revoked, this one included, and the client must sign in again.
    """
    verifier: CredentialVerifier = request.app.state.verifier
    result = _verify_or_unknown(verifier, current.email, body.current_password)
    if result.outcome is VerifyOutcome.LOCKED:
        return _locked(result)
    if not result.accepted:
        return _bad_credentials()

    try:
        verifier.set_password(current.id, body.new_password)
    except ValueError as exc:
        raise _unusable_password(exc) from exc
    resp = JSONResponse(content={"message": "Password changed. Please sign in again."})
    clear_session_cookie(resp)
    resp.headers["Cache-Control"] = "no-store"
    return resp

"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token transports are checked in priority order:
  1. "session_token" cookie -- set by POST /api/v1/auth/login.
  2. Authorization: Bearer <token> header -- API and mobile clients.

Both converge on SessionIssuer.validate(token); the token is passed in
explicitly and the resolved account is returned to the route, which then
scopes every record-store call to account.id.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from records/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Account
from auth.tokens import SESSION_COOKIE


def get_session_token(request: Request) -> str | None:
    """Extract the raw session token from the cookie or the Bearer header."""
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_current_account(request: Request) -> Account | None:
    """Resolve the request's session token to an Account.

    Returns None when no token is present, the session is unknown or
    expired, or the account has since been removed. Storage failures are
    not swallowed -- UnavailableError propagates to the 503 handler.
    """
    token = get_session_token(request)
    if token is None:
        return None
    account_id = request.app.state.sessions.validate(token)
    if account_id is None:
        return None
    return request.app.state.accounts.get_by_id(account_id)


def get_current_account(request: Request) -> Account:
    """Require a valid session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account

"""
api/main.py -- FastAPI application entry point for HealthTrack.

Exposes the credential verifier, session issuer, and health record store
over HTTP. The routes are thin: every decision (lockout, expiry, upsert)
lives in auth/ and records/.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (stores, services, session purge task) and
shutdown (cancel purge task, dispose engines) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.records import router as records_router
from auth.credentials import CredentialVerifier
from auth.sessions import SessionIssuer
from auth.store import AccountStore, SessionStore
from core.config import get_settings
from core.errors import NotFoundError, UnavailableError
from records.store import HealthRecordStore

API_VERSION = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if _settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("healthtrack.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired sessions every SESSION_PURGE_INTERVAL_SECONDS.

    validate() already evicts expired sessions lazily; this loop catches the
    ones nobody presents again. The purge itself is blocking SQL, so it runs
    in a worker thread. CancelledError from task.cancel() during shutdown
    propagates out of asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(_settings.session_purge_interval_seconds)
        try:
            await asyncio.to_thread(app.state.sessions.purge_expired)
        except UnavailableError:
            logger.warning("Session purge skipped: storage unavailable")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Startup order follows the dependency chain: stores first, then
    the session issuer, then the verifier that revokes sessions on lockout.
    """
    logger.info("HealthTrack API starting up")
    app.state.accounts = AccountStore()
    app.state.sessions = SessionIssuer(SessionStore())
    app.state.verifier = CredentialVerifier(app.state.accounts, app.state.sessions)
    app.state.records = HealthRecordStore()
    logger.info("Stores initialized")
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.records.close()
    app.state.sessions.store.close()
    app.state.accounts.close()
    logger.info("HealthTrack API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="HealthTrack API",
    description="Account sign-in with lockout, opaque sessions, and per-user health records.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(records_router, prefix="/api/v1", tags=["Health Records"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a dict detail ({"code", "message"}).
    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)
    response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    if headers:
        response.headers.update(headers)
    return response


@app.exception_handler(UnavailableError)
async def unavailable_handler(request: Request, exc: UnavailableError) -> JSONResponse:
    """Storage is down or timed out. Safe for clients to retry idempotent reads."""
    response = _error(503, "unavailable", "Service temporarily unavailable.")
    response.headers["Retry-After"] = "5"
    return response


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, "not_found", "Account not found.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit -- health checks from load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    try:
        request.app.state.accounts.ping()
        database = "ok"
    except UnavailableError:
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": database},
    )

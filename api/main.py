"""
api/main.py -- FastAPI application entry point for the iCafe auth service.

Run with:      python main.py serve
               uvicorn api.main:app --reload

Middleware, in the order a request meets them:
  1. TrustedHostMiddleware -- 400 for any Host not in ALLOWED_HOSTS
  2. CORSMiddleware        -- browser origin checks from CORS_ORIGINS
  3. SlowAPIMiddleware     -- per-IP limits declared with @limiter.limit()

Lifespan builds the user store and the two services on startup, seeds the
bootstrap admin when the store is empty, and closes the store on shutdown.

Error mapping lives here and only here: auth/ raises taxonomy errors
(auth.errors), this module decides their HTTP status.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError, ErrorCode
from auth.permissions import Role
from auth.service import AuthService
from auth.store import UserStore
from auth.users import UserService
from core.config import get_settings
from core.deadline import DeadlineExceeded

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("icafe.api")

_settings = get_settings()

# 401 for credential/token failures, 403 for authorization, 409 for conflicts.
_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.USER_INACTIVE: 403,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.USER_NOT_FOUND: 404,
    ErrorCode.ALREADY_EXISTS: 409,
    ErrorCode.PHONE_ALREADY_EXISTS: 409,
    ErrorCode.EMAIL_ALREADY_EXISTS: 409,
}


# ---------------------------------------------------------------------------
# Bootstrap admin
# ---------------------------------------------------------------------------


def seed_admin(store: UserStore, users: UserService) -> None:
    """Create the configured admin account if the store has no users yet.

    Only runs when ADMIN_USERNAME, ADMIN_PASSWORD and ADMIN_PHONE are all set.
    A concurrent worker winning the race is not an error.
    """
    if not _settings.bootstrap_admin_configured or store.has_users():
        return
    try:
        users.create_user(
            username=_settings.admin_username,
            password=_settings.admin_password,
            phone=_settings.admin_phone,
            full_name="Administrator",
            role=Role.ADMIN,
            email=_settings.admin_email or None,
        )
        logger.info("Bootstrap admin %r created", _settings.admin_username)
    except AuthError as exc:
        logger.info("Bootstrap admin not created: %s", exc.message)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store and build the services; close the store on shutdown."""
    logger.info("iCafe auth API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.auth_service = AuthService(app.state.user_store)
    app.state.user_service = UserService(app.state.user_store)
    seed_admin(app.state.user_store, app.state.user_service)
    logger.info("Auth initialized (users=%d)", app.state.user_store.count_users())

    yield

    app.state.user_store.close()
    logger.info("iCafe auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="iCafe Registration Auth API",
    description="Registration, login, token refresh, and user management.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware wraps the current stack, so the last one added sees the
# request first. Added innermost first: SlowAPI, CORS, TrustedHost.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

# SlowAPIMiddleware reads the limiter from app.state.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# One INFO line per request: method, path, status, latency, client address.
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
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves the API as {"error": {"code", "message", "detail"}}.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a taxonomy error with its fixed status and message.

    401 responses carry WWW-Authenticate: Bearer. Nothing beyond the fixed
    message is sent -- InvalidToken never says which check failed.
    """
    status_code = _STATUS_BY_CODE.get(exc.code, 400)
    response = _error(status_code, exc.code.value, exc.message)
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(DeadlineExceeded)
async def deadline_handler(request: Request, exc: DeadlineExceeded) -> JSONResponse:
    logger.warning("Deadline exceeded on %s %s: %s", request.method, request.url.path, exc)
    return _error(504, "timeout", "The request took too long to complete.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After in seconds."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 when pydantic rejects the body or query parameters."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Route-level HTTPExceptions. A dict detail is already {code, message}."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors (store outages included).

    The raw exception is logged server-side only, never written to the
    response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Public, unauthenticated, not rate limited.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness plus a database round-trip check."""
    components = {"app": "ok", "database": "ok"}
    try:
        request.app.state.user_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    status = "healthy" if components["database"] == "ok" else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components=components)

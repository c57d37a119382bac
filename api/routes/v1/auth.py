"""
api/routes/v1/auth.py -- Self-service authentication endpoints.

Routes:
  POST /api/v1/auth/register  -- create a customer account (public)
  POST /api/v1/auth/login     -- password login; returns access + refresh tokens
  POST /api/v1/auth/refresh   -- redeem a refresh token for a new pair
  POST /api/v1/auth/logout    -- stateless logout (requires auth)
  GET  /api/v1/auth/me        -- caller's token claims (requires auth)

Security:
  [H2] POST /login and /register are rate-limited per IP.
  [C1] AuthService.login() equalizes timing -- never inline lookup + verify here.
  [M5] Cache-Control: no-store on every response that carries tokens.

Route functions that hash or verify passwords are plain `def` so FastAPI runs
them in its threadpool -- bcrypt is deliberately slow and must not block the
event loop. Errors are raised as auth.errors.AuthError and rendered by the
handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, MeResponse, MessageResponse, RefreshRequest, RegisterRequest, TokenResponse
from api.models import UserResponse
from auth.dependencies import get_current_claims
from auth.models import TokenClaims
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/register: public -- gated by SELF_REGISTRATION_ENABLED
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  public -- the refresh token is the credential
# - POST /api/v1/auth/logout:   requires auth (get_current_claims)
# - GET  /api/v1/auth/me:       requires auth (get_current_claims)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _no_store(payload: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=payload)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.register_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a self-service account. The role is always customer.

    409 with already_exists / phone_already_exists when the username or
    phone is taken, including when a concurrent request took it first.
    """
    if not _settings.self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    user = _service(request).register(
        username=body.username,
        password=body.password,
        phone=body.phone,
        full_name=body.full_name,
    )
    return UserResponse.from_user(user)


@limiter.limit(_settings.login_rate_limit)  # [H2] brute-force mitigation
@router.post("/auth/login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a token pair.

    Unknown username and wrong password both yield 401 invalid_credentials.
    A correct password on a disabled account yields 403 user_inactive.
    """
    result = _service(request).login(body.username, body.password)
    return _no_store(TokenResponse.from_result(result).model_dump(mode="json"))


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a fresh access + refresh pair.

    Role and permissions in the new access token come from the current user
    record, not from the refresh token.
    """
    result = _service(request).refresh(body.refresh_token)
    return _no_store(TokenResponse.from_result(result).model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, claims: TokenClaims = Depends(get_current_claims)) -> MessageResponse:
    """Acknowledge logout. Tokens are stateless; the client must discard them."""
    _service(request).logout(claims.user_id)
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: TokenClaims = Depends(get_current_claims)) -> MeResponse:
    """Return identity information carried by the caller's access token."""
    return MeResponse.from_claims(claims)

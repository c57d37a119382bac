"""
API request and response models for the auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Input validation lives here: length limits, the email pattern, and the closed
Role / Permission enums. An unknown role string never reaches auth/.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import LoginResult, TokenClaims, UserAccount
from auth.permissions import Permission, Role, effective_permissions

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^\+?[0-9]+$"


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register (public, role=customer)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6, max_length=100)
    phone: str = Field(min_length=10, max_length=15, pattern=PHONE_PATTERN)
    full_name: str = Field(min_length=2, max_length=100)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=100)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserInfo(BaseModel):
    """Identity summary embedded in token responses."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: Optional[str]
    full_name: str
    role: Role
    permissions: list[Permission]


class TokenResponse(BaseModel):
    """Response body for login and refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str
    expires_in: int
    user: UserInfo

    @classmethod
    def from_result(cls, result: LoginResult) -> "TokenResponse":
        user = result.user
        return cls(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            token_type=result.token_type,
            expires_in=result.expires_in,
            user=UserInfo(
                id=user.id,
                username=user.username,
                email=user.email,
                full_name=user.full_name,
                role=user.role,
                permissions=sorted(result.permissions),
            ),
        )


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me -- the caller's token claims."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    email: Optional[str]
    role: Role
    permissions: list[Permission]
    expires_at: Optional[str]

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "MeResponse":
        return cls(
            user_id=claims.user_id,
            username=claims.username,
            email=claims.email,
            role=claims.role,
            permissions=sorted(claims.permissions),
            expires_at=claims.expires_at.isoformat() if claims.expires_at else None,
        )


# ---------------------------------------------------------------------------
# User management -- request models
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (admin create, explicit role)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6, max_length=100)
    phone: str = Field(min_length=10, max_length=15, pattern=PHONE_PATTERN)
    full_name: str = Field(min_length=2, max_length=100)
    role: Role
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(default=None, min_length=10, max_length=15, pattern=PHONE_PATTERN)
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    custom_permissions: Optional[list[Permission]] = None


class RoleUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}/role."""

    role: Optional[Role] = None
    custom_permissions: Optional[list[Permission]] = None


class PasswordChange(BaseModel):
    old_password: str = Field(min_length=1, max_length=100)
    new_password: str = Field(min_length=6, max_length=100)


# ---------------------------------------------------------------------------
# User management -- response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Full account view. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    phone: str
    email: Optional[str]
    full_name: str
    role: Role
    custom_permissions: list[Permission]
    permissions: list[Permission]
    is_active: bool
    created_at: str
    last_login: Optional[str]

    @classmethod
    def from_user(cls, user: UserAccount) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            phone=user.phone,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            custom_permissions=list(user.custom_permissions),
            permissions=sorted(effective_permissions(user)),
            is_active=user.is_active,
            created_at=user.created_at or "",
            last_login=user.last_login,
        )


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[UserResponse]
    total: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


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

    status: str
    version: str
    components: dict[str, str]

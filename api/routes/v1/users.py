"""
api/routes/v1/users.py -- Administrative user management endpoints.

Routes:
  POST   /api/v1/users                 -- create user with explicit role
  GET    /api/v1/users                 -- list users (limit/offset)
  GET    /api/v1/users/{id}            -- get one user
  PATCH  /api/v1/users/{id}            -- update profile / active flag / custom permissions
  PUT    /api/v1/users/{id}/role       -- change role and custom permissions (admin role only)
  PUT    /api/v1/users/{id}/password   -- change password (old password required)
  DELETE /api/v1/users/{id}            -- delete user

Auth policy:
  Every route requires the user:manage permission, so an admin can delegate
  user management by granting user:manage as a custom permission. A delegate
  (user:manage without the admin role) is limited to customer accounts it
  creates and to non-admin targets:
    - creating any role other than customer needs the admin role;
    - changing a role or custom permissions needs the admin role;
    - editing, deactivating, re-passwording or deleting an admin account
      needs the admin role.
  Otherwise a delegate could mint or keep an admin account and promote itself.

  [M4] Admins cannot deactivate or delete their own account, so the last
  admin cannot lock everyone out by accident.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import MessageResponse, PasswordChange, RoleUpdate, UserCreate, UserListResponse, UserPatch
from api.models import UserResponse
from auth.dependencies import permission_required, require_role, role_required
from auth.errors import Forbidden
from auth.models import TokenClaims
from auth.permissions import Permission, Role
from auth.users import UserService

router = APIRouter()

_manage_users = permission_required(Permission.USER_MANAGE)
_admin_only = role_required(Role.ADMIN)


def _service(request: Request) -> UserService:
    return request.app.state.user_service


def _guard_admin_target(request: Request, claims: TokenClaims, user_id: int) -> None:
    """Only an admin may act on an admin account."""
    if claims.role is Role.ADMIN:
        return
    if _service(request).get_user(user_id).role is Role.ADMIN:
        raise Forbidden()


def _forbid_self(claims: TokenClaims, user_id: int, code: str, message: str) -> None:
    # [M4]
    if claims.user_id == user_id:
        raise HTTPException(status_code=400, detail={"code": code, "message": message})


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    claims: TokenClaims = Depends(_manage_users),
) -> UserResponse:
    """Create an account. Roles other than customer need the admin role.

    409 on username / phone / email conflict.
    """
    if body.role is not Role.CUSTOMER:
        require_role(claims, Role.ADMIN)
    user = _service(request).create_user(
        username=body.username,
        password=body.password,
        phone=body.phone,
        full_name=body.full_name,
        role=body.role,
        email=body.email,
    )
    return UserResponse.from_user(user)


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    claims: TokenClaims = Depends(_manage_users),
) -> UserListResponse:
    users, total = _service(request).list_users(limit=limit, offset=offset)
    return UserListResponse(
        items=[UserResponse.from_user(u) for u in users],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, claims: TokenClaims = Depends(_manage_users)) -> UserResponse:
    return UserResponse.from_user(_service(request).get_user(user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    claims: TokenClaims = Depends(_manage_users),
) -> UserResponse:
    """Update only the provided fields.

    Role and custom-permission changes through PATCH are held to the same
    admin-only rule as PUT /users/{id}/role.
    """
    if body.role is not None or body.custom_permissions is not None:
        require_role(claims, Role.ADMIN)
    if body.is_active is False:
        _forbid_self(claims, user_id, "self_deactivation", "You cannot deactivate your own account.")
    _guard_admin_target(request, claims, user_id)
    user = _service(request).update_user(
        user_id,
        email=body.email,
        phone=body.phone,
        full_name=body.full_name,
        role=body.role,
        is_active=body.is_active,
        custom_permissions=body.custom_permissions,
    )
    return UserResponse.from_user(user)


@router.put("/users/{user_id}/role", response_model=UserResponse)
def update_role(
    request: Request,
    user_id: int,
    body: RoleUpdate,
    claims: TokenClaims = Depends(_admin_only),
) -> UserResponse:
    """Replace role and/or custom permissions. Takes effect at the user's next token issuance."""
    user = _service(request).update_role(user_id, role=body.role, custom_permissions=body.custom_permissions)
    return UserResponse.from_user(user)


@router.put("/users/{user_id}/password", response_model=MessageResponse)
def change_password(
    request: Request,
    user_id: int,
    body: PasswordChange,
    claims: TokenClaims = Depends(_manage_users),
) -> MessageResponse:
    """Change a password. 401 invalid_credentials if old_password is wrong."""
    _guard_admin_target(request, claims, user_id)
    _service(request).change_password(user_id, body.old_password, body.new_password)
    return MessageResponse(message="Password changed.")


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int, claims: TokenClaims = Depends(_manage_users)) -> Response:
    _forbid_self(claims, user_id, "self_deletion", "You cannot delete your own account.")
    _guard_admin_target(request, claims, user_id)
    _service(request).delete_user(user_id)
    return Response(status_code=204)

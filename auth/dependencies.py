"""
auth/dependencies.py -- Authorization gate and FastAPI Depends() helpers.

Two layers:

  Predicates -- require_role() and require_permission() are pure checks over
      TokenClaims. They raise Forbidden or return None. They never touch the
      store, so a role change after issuance is invisible here until the token
      is replaced (bounded by the access-token TTL).

  Dependencies -- get_current_claims() pulls the bearer token off the request
      and decodes it; role_required() / permission_required() build route
      dependencies that chain the two.

Failure mapping:
  - No Authorization header, or not "Bearer <token>"   -> Unauthorized
  - Token present but fails verification               -> InvalidToken
  - Valid token, role/permission not granted           -> Forbidden
api/main.py turns these into 401 / 401 / 403.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Depends/Request) because
  this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.errors import Forbidden, Unauthorized
from auth.models import TokenClaims
from auth.permissions import Permission, Role
from auth.tokens import TokenType, decode_token

# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def require_role(claims: TokenClaims, *allowed_roles: Role) -> None:
    """Pass if the token's role is one of allowed_roles; raise Forbidden otherwise."""
    if claims.role not in allowed_roles:
        raise Forbidden()


def require_permission(claims: TokenClaims, permission: Permission) -> None:
    """Pass if the token carries permission; raise Forbidden otherwise."""
    if permission not in claims.permissions:
        raise Forbidden()


# ---------------------------------------------------------------------------
# Bearer extraction
# ---------------------------------------------------------------------------


def bearer_token(request: Request) -> str:
    """Return the raw token from "Authorization: Bearer <token>".

    The scheme is matched case-insensitively. Raises Unauthorized when the
    header is missing, uses another scheme, or has an empty token.
    """
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized()
    return token


def get_current_claims(request: Request) -> TokenClaims:
    """Require a valid access token. Use as a FastAPI dependency:

        @router.get("/protected")
        def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    return decode_token(bearer_token(request), expected_type=TokenType.ACCESS)


# ---------------------------------------------------------------------------
# Dependency factories
# ---------------------------------------------------------------------------


def role_required(*roles: Role) -> Callable[..., TokenClaims]:
    """Build a dependency that admits only the given roles.

        @router.put("/users/{user_id}/role")
        def route(claims: TokenClaims = Depends(role_required(Role.ADMIN))): ...
    """

    def dependency(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        require_role(claims, *roles)
        return claims

    return dependency


def permission_required(permission: Permission) -> Callable[..., TokenClaims]:
    """Build a dependency that admits only tokens carrying permission."""

    def dependency(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        require_permission(claims, permission)
        return claims

    return dependency

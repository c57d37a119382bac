"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores and services do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from auth.permissions import Permission, Role


@dataclass
class UserAccount:
    """An identity record owned by the user store.

    username, phone and (when set) email are each globally unique; the store's
    UNIQUE constraints are the authoritative guarantee.

    hashed_password is a bcrypt record and is kept out of repr() so accounts can
    be logged without leaking it. The plaintext password never reaches this
    class.

    custom_permissions are admin-granted extras on top of the role bundle; see
    auth.permissions.effective_permissions().
    """

    username: str
    phone: str
    full_name: str
    role: Role = Role.CUSTOMER
    id: int | None = None
    email: str | None = None
    hashed_password: str = field(default="", repr=False)
    custom_permissions: tuple[Permission, ...] = ()
    is_active: bool = True
    created_at: str | None = None
    modified_at: str | None = None
    last_login: str | None = None  # ISO 8601, None until first login


@dataclass(frozen=True)
class TokenClaims:
    """Flat, immutable payload carried inside a signed token.

    issued_at / expires_at are None on claims built for issuance and filled in
    on claims recovered by decode_token(). Refresh tokens carry an empty
    permission set; permissions are re-derived from the store on redemption.
    """

    user_id: int
    username: str
    role: Role
    email: str | None = None
    permissions: frozenset[Permission] = frozenset()
    token_type: str = "access"
    issued_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass
class LoginResult:
    """Token pair plus the identity it was issued for."""

    access_token: str
    refresh_token: str
    expires_in: int  # seconds until the access token expires
    user: UserAccount
    permissions: frozenset[Permission]
    token_type: str = "Bearer"

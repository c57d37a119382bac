"""
auth/permissions.py -- Roles, permissions, and effective-permission resolution.

Roles are coarse identity categories with a fixed permission bundle. A user's
effective permissions are the role bundle plus any admin-granted custom
permissions. Both sets are closed enums: an unknown role string resolves to
no permissions at all (fail closed), never to a default bundle.

The table is built once at import time and exposed read-only through
MappingProxyType so no caller can widen a role at runtime.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import UserAccount


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    SALE = "sale"
    STAFF = "staff"
    CUSTOMER = "customer"


class Permission(str, Enum):
    REGISTRATION_READ = "registration:read"
    REGISTRATION_WRITE = "registration:write"
    REGISTRATION_DELETE = "registration:delete"
    FILE_READ = "file:read"
    FILE_WRITE = "file:write"
    FILE_DELETE = "file:delete"
    USER_MANAGE = "user:manage"


ROLE_PERMISSIONS: MappingProxyType[Role, frozenset[Permission]] = MappingProxyType(
    {
        Role.ADMIN: frozenset(Permission),
        Role.MANAGER: frozenset(
            {
                Permission.REGISTRATION_READ,
                Permission.REGISTRATION_WRITE,
                Permission.REGISTRATION_DELETE,
                Permission.FILE_READ,
                Permission.FILE_WRITE,
                Permission.FILE_DELETE,
            }
        ),
        Role.SALE: frozenset(
            {
                Permission.REGISTRATION_READ,
                Permission.REGISTRATION_WRITE,
                Permission.FILE_READ,
                Permission.FILE_WRITE,
            }
        ),
        Role.STAFF: frozenset(
            {
                Permission.REGISTRATION_READ,
                Permission.REGISTRATION_WRITE,
                Permission.FILE_READ,
                Permission.FILE_WRITE,
            }
        ),
        Role.CUSTOMER: frozenset({Permission.REGISTRATION_READ, Permission.FILE_READ}),
    }
)


def parse_role(value: Role | str) -> Role | None:
    """Return the Role for value, or None if it is not a known role."""
    try:
        return Role(value)
    except ValueError:
        return None


def parse_permissions(values: Iterable[Permission | str]) -> frozenset[Permission]:
    """Convert raw permission strings to Permission members.

    Raises ValueError on the first unknown value. Callers that read from
    storage decide themselves whether to drop or reject unknown entries.
    """
    return frozenset(Permission(v) for v in values)


def permissions_for(role: Role | str) -> frozenset[Permission]:
    """Return the permission bundle for a role. Unknown roles get an empty set."""
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(parsed, frozenset())


def effective_permissions(user: UserAccount) -> frozenset[Permission]:
    """Role bundle plus the user's custom permissions, deduplicated.

    Recomputed on every call. Callers must not cache the result beyond a single
    token lifetime -- a demoted user would otherwise keep the old bundle.
    """
    return permissions_for(user.role) | frozenset(user.custom_permissions)

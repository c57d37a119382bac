"""
tests/test_permissions.py -- Unit tests for the role table and resolver.

Covers:
  - Exact permission bundle for every role
  - Unknown roles resolve to nothing (fail closed)
  - Custom permissions union with the role bundle, deduplicated
  - The table cannot be mutated at runtime
"""

from __future__ import annotations

import pytest

from auth.models import UserAccount
from auth.permissions import (
    ROLE_PERMISSIONS,
    Permission,
    Role,
    effective_permissions,
    parse_permissions,
    parse_role,
    permissions_for,
)

P = Permission


class TestRoleTable:
    def test_admin_has_every_permission(self) -> None:
        assert permissions_for(Role.ADMIN) == frozenset(Permission)
        assert P.USER_MANAGE in permissions_for(Role.ADMIN)

    def test_manager_bundle(self) -> None:
        assert permissions_for(Role.MANAGER) == {
            P.REGISTRATION_READ,
            P.REGISTRATION_WRITE,
            P.REGISTRATION_DELETE,
            P.FILE_READ,
            P.FILE_WRITE,
            P.FILE_DELETE,
        }

    @pytest.mark.parametrize("role", [Role.SALE, Role.STAFF])
    def test_sale_and_staff_bundle(self, role: Role) -> None:
        assert permissions_for(role) == {P.REGISTRATION_READ, P.REGISTRATION_WRITE, P.FILE_READ, P.FILE_WRITE}

    def test_customer_bundle(self) -> None:
        assert permissions_for(Role.CUSTOMER) == {P.REGISTRATION_READ, P.FILE_READ}

    def test_only_admin_manages_users(self) -> None:
        holders = [role for role in Role if P.USER_MANAGE in permissions_for(role)]
        assert holders == [Role.ADMIN]

    def test_role_strings_resolve_like_members(self) -> None:
        assert permissions_for("customer") == permissions_for(Role.CUSTOMER)

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            ROLE_PERMISSIONS[Role.CUSTOMER] = frozenset(Permission)  # type: ignore[index]


class TestUnknownValues:
    def test_unknown_role_has_no_permissions(self) -> None:
        assert permissions_for("superuser") == frozenset()
        assert permissions_for("") == frozenset()

    def test_parse_role(self) -> None:
        assert parse_role("manager") is Role.MANAGER
        assert parse_role("root") is None

    def test_parse_permissions_rejects_unknown(self) -> None:
        assert parse_permissions(["file:read", "file:read"]) == {P.FILE_READ}
        with pytest.raises(ValueError):
            parse_permissions(["file:read", "file:execute"])


class TestEffectivePermissions:
    def test_custom_permissions_are_added(self) -> None:
        user = UserAccount(
            username="carol",
            phone="0900000003",
            full_name="Carol",
            role=Role.CUSTOMER,
            custom_permissions=(P.FILE_WRITE,),
        )
        assert effective_permissions(user) == {P.REGISTRATION_READ, P.FILE_READ, P.FILE_WRITE}

    def test_overlapping_custom_permission_is_deduplicated(self) -> None:
        user = UserAccount(
            username="dave",
            phone="0900000004",
            full_name="Dave",
            role=Role.STAFF,
            custom_permissions=(P.FILE_READ, P.FILE_READ),
        )
        assert effective_permissions(user) == permissions_for(Role.STAFF)

    def test_recomputed_after_role_change(self) -> None:
        user = UserAccount(username="erin", phone="0900000005", full_name="Erin", role=Role.MANAGER)
        assert P.FILE_DELETE in effective_permissions(user)
        user.role = Role.CUSTOMER
        assert P.FILE_DELETE not in effective_permissions(user)

    def test_empty_custom_permissions_equal_role_bundle(self) -> None:
        for role in Role:
            user = UserAccount(username="u", phone="0900000006", full_name="U", role=role)
            assert effective_permissions(user) == permissions_for(role)

    def test_staff_with_user_manage(self) -> None:
        user = UserAccount(
            username="frank",
            phone="0900000007",
            full_name="Frank",
            role=Role.STAFF,
            custom_permissions=(P.USER_MANAGE,),
        )
        assert effective_permissions(user) == permissions_for(Role.STAFF) | {P.USER_MANAGE}
        assert len(effective_permissions(user)) == 5

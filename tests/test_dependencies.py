"""
tests/test_dependencies.py -- Unit tests for the authorization gate.

require_role / require_permission are pure predicates over TokenClaims, so
they are tested without HTTP. bearer_token is tested with a bare Starlette
Request built from a scope dict.
"""

from __future__ import annotations

import pytest
from starlette.requests import Request

from auth.dependencies import bearer_token, get_current_claims, require_permission, require_role
from auth.errors import Forbidden, InvalidToken, Unauthorized
from auth.models import TokenClaims, UserAccount
from auth.permissions import Permission, Role, permissions_for
from auth.tokens import create_access_token, create_refresh_token


def _claims(role: Role, extra: frozenset = frozenset()) -> TokenClaims:
    return TokenClaims(user_id=1, username="u", role=role, permissions=permissions_for(role) | extra)


def _request(authorization: str | None = None) -> Request:
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


class TestRequireRole:
    def test_allowed(self) -> None:
        require_role(_claims(Role.MANAGER), Role.ADMIN, Role.MANAGER)

    def test_denied(self) -> None:
        with pytest.raises(Forbidden):
            require_role(_claims(Role.STAFF), Role.ADMIN, Role.MANAGER)

    def test_no_roles_denies_everyone(self) -> None:
        with pytest.raises(Forbidden):
            require_role(_claims(Role.ADMIN))


class TestRequirePermission:
    def test_granted_by_role(self) -> None:
        require_permission(_claims(Role.SALE), Permission.REGISTRATION_WRITE)

    def test_denied(self) -> None:
        with pytest.raises(Forbidden):
            require_permission(_claims(Role.CUSTOMER), Permission.FILE_WRITE)

    def test_granted_by_custom_permission(self) -> None:
        claims = _claims(Role.STAFF, frozenset({Permission.USER_MANAGE}))
        require_permission(claims, Permission.USER_MANAGE)

    def test_checks_claims_not_role_table(self) -> None:
        # A token minted with an empty set is denied even for an admin role.
        claims = TokenClaims(user_id=1, username="u", role=Role.ADMIN)
        with pytest.raises(Forbidden):
            require_permission(claims, Permission.FILE_READ)


class TestBearerExtraction:
    def test_valid_header(self) -> None:
        assert bearer_token(_request("Bearer abc.def.ghi")) == "abc.def.ghi"

    def test_scheme_is_case_insensitive(self) -> None:
        assert bearer_token(_request("bearer abc")) == "abc"

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic dXNlcjpwdw==", "abc.def.ghi"])
    def test_missing_or_malformed(self, header) -> None:
        with pytest.raises(Unauthorized):
            bearer_token(_request(header))


class TestCurrentClaims:
    @pytest.fixture
    def user(self) -> UserAccount:
        return UserAccount(id=3, username="sam", phone="0900000030", full_name="Sam", role=Role.SALE)

    def test_access_token(self, user: UserAccount) -> None:
        claims = get_current_claims(_request(f"Bearer {create_access_token(user)}"))
        assert claims.user_id == 3
        assert claims.role is Role.SALE

    def test_refresh_token_is_refused(self, user: UserAccount) -> None:
        with pytest.raises(InvalidToken):
            get_current_claims(_request(f"Bearer {create_refresh_token(user)}"))

    def test_garbage_token(self) -> None:
        with pytest.raises(InvalidToken):
            get_current_claims(_request("Bearer not-a-token"))

"""
tests/test_users.py -- Unit tests for UserService (administrative management).
"""

from __future__ import annotations

import pytest

from auth.errors import (
    EmailAlreadyExists,
    InvalidCredentials,
    PhoneAlreadyExists,
    UserNotFound,
    UsernameAlreadyExists,
)
from auth.passwords import verify_password
from auth.permissions import Permission, Role
from auth.store import UserStore
from auth.users import UserService
from core.deadline import Deadline, DeadlineExceeded

from conftest import make_user


@pytest.fixture
def users(store: UserStore) -> UserService:
    return UserService(store)


class TestCreate:
    def test_create_with_explicit_role(self, users: UserService) -> None:
        user = users.create_user("mgr", "s3cret!", "0900000010", "Manager", Role.MANAGER, email="m@example.com")
        assert user.role is Role.MANAGER
        assert user.email == "m@example.com"

    def test_conflicts(self, users: UserService) -> None:
        users.create_user("mgr", "s3cret!", "0900000010", "Manager", Role.MANAGER, email="m@example.com")
        with pytest.raises(UsernameAlreadyExists):
            users.create_user("mgr", "s3cret!", "0900000011", "Other", Role.STAFF)
        with pytest.raises(PhoneAlreadyExists):
            users.create_user("other", "s3cret!", "0900000010", "Other", Role.STAFF)
        with pytest.raises(EmailAlreadyExists):
            users.create_user("other", "s3cret!", "0900000011", "Other", Role.STAFF, email="m@example.com")


class TestReadAndList:
    def test_get_missing(self, users: UserService) -> None:
        with pytest.raises(UserNotFound):
            users.get_user(404)

    def test_list_returns_page_and_total(self, users: UserService, store: UserStore) -> None:
        for name in ("ann", "ben", "cat"):
            make_user(store, name)
        page, total = users.list_users(limit=2, offset=0)
        assert [u.username for u in page] == ["ann", "ben"]
        assert total == 3

    def test_deadline(self, users: UserService) -> None:
        with pytest.raises(DeadlineExceeded):
            users.list_users(deadline=Deadline(expires_at=0))


class TestUpdate:
    def test_partial_update(self, users: UserService, store: UserStore) -> None:
        user = make_user(store, "ann")
        updated = users.update_user(user.id, full_name="Ann B.", email="ann@example.com")
        assert updated.full_name == "Ann B."
        assert updated.email == "ann@example.com"
        assert updated.phone == user.phone

    def test_nothing_to_change(self, users: UserService, store: UserStore) -> None:
        user = make_user(store, "ann")
        assert users.update_user(user.id).username == "ann"

    def test_same_phone_is_not_a_conflict(self, users: UserService, store: UserStore) -> None:
        user = make_user(store, "ann")
        assert users.update_user(user.id, phone=user.phone).phone == user.phone

    def test_phone_and_email_conflicts(self, users: UserService, store: UserStore) -> None:
        make_user(store, "ann", phone="0900000020", email="ann@example.com")
        ben = make_user(store, "ben")
        with pytest.raises(PhoneAlreadyExists):
            users.update_user(ben.id, phone="0900000020")
        with pytest.raises(EmailAlreadyExists):
            users.update_user(ben.id, email="ann@example.com")

    def test_missing_user(self, users: UserService) -> None:
        with pytest.raises(UserNotFound):
            users.update_user(404, full_name="Ghost")

    def test_update_role_and_custom_permissions(self, users: UserService, store: UserStore) -> None:
        user = make_user(store, "ann")
        updated = users.update_role(
            user.id,
            role=Role.STAFF,
            custom_permissions=[Permission.FILE_DELETE, Permission.FILE_DELETE],
        )
        assert updated.role is Role.STAFF
        assert updated.custom_permissions == (Permission.FILE_DELETE,)

    def test_deactivate(self, users: UserService, store: UserStore) -> None:
        user = make_user(store, "ann")
        assert users.update_user(user.id, is_active=False).is_active is False


class TestPassword:
    def test_change_password(self, users: UserService, store: UserStore) -> None:
        user = make_user(store, "ann", "old-pass")
        users.change_password(user.id, "old-pass", "new-pass")
        stored = store.get_by_id(user.id)
        assert verify_password("new-pass", stored.hashed_password)
        assert not verify_password("old-pass", stored.hashed_password)

    def test_wrong_old_password(self, users: UserService, store: UserStore) -> None:
        user = make_user(store, "ann", "old-pass")
        with pytest.raises(InvalidCredentials):
            users.change_password(user.id, "guess", "new-pass")


class TestDelete:
    def test_delete(self, users: UserService, store: UserStore) -> None:
        user = make_user(store, "ann")
        users.delete_user(user.id)
        assert store.get_by_id(user.id) is None

    def test_delete_missing(self, users: UserService) -> None:
        with pytest.raises(UserNotFound):
            users.delete_user(404)

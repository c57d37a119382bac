"""
auth/users.py -- Administrative user management.

UserService backs the /users routes: create with an explicit role, read, list,
update profile fields, change role and custom permissions, change password,
delete. It shares AuthService's rules:

  - uniqueness pre-checks run before bcrypt, and a DuplicateUserError from the
    store maps to the same error as the pre-check;
  - a None from the store is translated (UserNotFound), never passed through;
  - every operation takes an explicit Deadline.

Role or custom-permission changes are not pushed into tokens already issued;
they take effect at the user's next login or refresh.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.errors import (
    EmailAlreadyExists,
    InvalidCredentials,
    PhoneAlreadyExists,
    UserNotFound,
    UsernameAlreadyExists,
    conflict_for_field,
)
from auth.models import UserAccount
from auth.passwords import hash_password, verify_password
from auth.permissions import Permission, Role
from auth.store import DuplicateUserError, UserRepository
from core.config import get_settings
from core.deadline import Deadline

logger = logging.getLogger("icafe.auth")


class UserService:
    def __init__(self, store: UserRepository, timeout_seconds: float | None = None) -> None:
        self._store = store
        self._timeout = timeout_seconds if timeout_seconds is not None else get_settings().request_timeout_seconds

    def _deadline(self, deadline: Deadline | None) -> Deadline:
        return deadline if deadline is not None else Deadline.after(self._timeout)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        password: str,
        phone: str,
        full_name: str,
        role: Role,
        email: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> UserAccount:
        """Administrative create. Unlike register(), the caller picks the role."""
        deadline = self._deadline(deadline)

        deadline.check("create_user")
        if self._store.get_by_username(username) is not None:
            raise UsernameAlreadyExists()
        deadline.check("create_user")
        if self._store.get_by_phone(phone) is not None:
            raise PhoneAlreadyExists()
        if email:
            deadline.check("create_user")
            if self._store.get_by_email(email) is not None:
                raise EmailAlreadyExists()

        user = UserAccount(
            username=username,
            phone=phone,
            email=email or None,
            full_name=full_name,
            role=Role(role),
            hashed_password=hash_password(password),
        )
        deadline.check("create_user")
        try:
            user_id = self._store.create_user(user)
        except DuplicateUserError as exc:
            raise conflict_for_field(exc.field) from exc

        logger.info("Created user %s (id=%s, role=%s)", username, user_id, user.role.value)
        return self._require(user_id)

    def get_user(self, user_id: int, *, deadline: Deadline | None = None) -> UserAccount:
        self._deadline(deadline).check("get_user")
        return self._require(user_id)

    def list_users(
        self, limit: int = 10, offset: int = 0, *, deadline: Deadline | None = None
    ) -> tuple[list[UserAccount], int]:
        """Return one page of users and the total count."""
        deadline = self._deadline(deadline)
        deadline.check("list_users")
        users = self._store.list_users(limit=limit, offset=offset)
        deadline.check("list_users")
        return users, self._store.count_users()

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_user(
        self,
        user_id: int,
        *,
        email: str | None = None,
        phone: str | None = None,
        full_name: str | None = None,
        role: Role | None = None,
        is_active: bool | None = None,
        custom_permissions: Iterable[Permission] | None = None,
        deadline: Deadline | None = None,
    ) -> UserAccount:
        """Change only the fields that were provided (None means "leave as is")."""
        deadline = self._deadline(deadline)
        deadline.check("update_user")
        existing = self._require(user_id)

        updates: dict = {}
        if email is not None and email != existing.email:
            deadline.check("update_user")
            if email and self._store.get_by_email(email) is not None:
                raise EmailAlreadyExists()
            updates["email"] = email
        if phone is not None and phone != existing.phone:
            deadline.check("update_user")
            if self._store.get_by_phone(phone) is not None:
                raise PhoneAlreadyExists()
            updates["phone"] = phone
        if full_name is not None:
            updates["full_name"] = full_name
        if role is not None:
            updates["role"] = Role(role)
        if is_active is not None:
            updates["is_active"] = is_active
        if custom_permissions is not None:
            updates["custom_permissions"] = _dedupe(custom_permissions)

        if not updates:
            return existing
        return self._write(user_id, updates, deadline)

    def update_role(
        self,
        user_id: int,
        role: Role | None = None,
        custom_permissions: Iterable[Permission] | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> UserAccount:
        """Replace a user's role and/or custom permission grants."""
        deadline = self._deadline(deadline)
        deadline.check("update_role")
        existing = self._require(user_id)

        updates: dict = {}
        if role is not None:
            updates["role"] = Role(role)
        if custom_permissions is not None:
            updates["custom_permissions"] = _dedupe(custom_permissions)
        if not updates:
            return existing

        updated = self._write(user_id, updates, deadline)
        logger.info(
            "Role for user %s set to %s (custom=%s)",
            user_id,
            updated.role.value,
            [p.value for p in updated.custom_permissions],
        )
        return updated

    def change_password(
        self, user_id: int, old_password: str, new_password: str, *, deadline: Deadline | None = None
    ) -> None:
        """Replace the password after verifying the current one.

        Raises InvalidCredentials if old_password does not match.
        """
        deadline = self._deadline(deadline)
        deadline.check("change_password")
        user = self._require(user_id)
        if not verify_password(old_password, user.hashed_password):
            raise InvalidCredentials()
        hashed = hash_password(new_password)
        deadline.check("change_password")
        if not self._store.update_user(user_id, hashed_password=hashed):
            raise UserNotFound()
        logger.info("Password changed for user %s", user_id)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_user(self, user_id: int, *, deadline: Deadline | None = None) -> None:
        self._deadline(deadline).check("delete_user")
        if not self._store.delete_user(user_id):
            raise UserNotFound()
        logger.info("Deleted user %s", user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, user_id: int) -> UserAccount:
        user = self._store.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def _write(self, user_id: int, updates: dict, deadline: Deadline) -> UserAccount:
        deadline.check("update_user")
        try:
            found = self._store.update_user(user_id, **updates)
        except DuplicateUserError as exc:
            raise conflict_for_field(exc.field) from exc
        if not found:
            raise UserNotFound()
        return self._require(user_id)


def _dedupe(perms: Iterable[Permission]) -> tuple[Permission, ...]:
    return tuple(dict.fromkeys(Permission(p) for p in perms))

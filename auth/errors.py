"""
auth/errors.py -- Closed error taxonomy for the auth core.

Every failure the auth services report to a caller is one of the ErrorCode
members below, raised as the matching AuthError subclass. Callers dispatch on
the exception type (or exc.code), never on message text.

Messages are fixed and deliberately vague: InvalidToken does not say which
check failed, InvalidCredentials does not say whether the username exists.

HTTP status codes are NOT defined here -- that mapping belongs to api/main.py.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    USER_INACTIVE = "user_inactive"
    ALREADY_EXISTS = "already_exists"
    PHONE_ALREADY_EXISTS = "phone_already_exists"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    USER_NOT_FOUND = "user_not_found"


class AuthError(Exception):
    """Base class for all taxonomy errors. Subclasses fix code and message."""

    code: ErrorCode
    message: str

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    code = ErrorCode.INVALID_CREDENTIALS
    message = "Invalid username or password."


class InvalidToken(AuthError):
    code = ErrorCode.INVALID_TOKEN
    message = "Invalid or expired token."


class UserInactive(AuthError):
    code = ErrorCode.USER_INACTIVE
    message = "User account is inactive."


class UsernameAlreadyExists(AuthError):
    code = ErrorCode.ALREADY_EXISTS
    message = "Username already exists."


class PhoneAlreadyExists(AuthError):
    code = ErrorCode.PHONE_ALREADY_EXISTS
    message = "Phone number already registered."


class EmailAlreadyExists(AuthError):
    code = ErrorCode.EMAIL_ALREADY_EXISTS
    message = "Email already registered."


class Forbidden(AuthError):
    code = ErrorCode.FORBIDDEN
    message = "Forbidden: insufficient permissions."


class Unauthorized(AuthError):
    code = ErrorCode.UNAUTHORIZED
    message = "Authentication required."


class UserNotFound(AuthError):
    code = ErrorCode.USER_NOT_FOUND
    message = "User not found."


_CONFLICT_BY_FIELD: dict[str, type[AuthError]] = {
    "username": UsernameAlreadyExists,
    "phone": PhoneAlreadyExists,
    "email": EmailAlreadyExists,
}


def conflict_for_field(field: str) -> AuthError:
    """Map a store-level duplicate field name to its taxonomy error."""
    return _CONFLICT_BY_FIELD.get(field, UsernameAlreadyExists)()

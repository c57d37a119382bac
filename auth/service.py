"""
auth/service.py -- Registration, login, token refresh, and logout.

AuthService orchestrates the store, the password hasher, the permission
resolver and the token codec. Each call is independent; the only shared state
is the store. Every operation takes an explicit Deadline (defaulting to
Settings.request_timeout_seconds from call entry) and checks it before each
store round-trip.

Ordering rules:
  register -- username check, phone check, THEN hash. Rejected requests never
      pay the bcrypt cost. The pre-checks race with concurrent registrations;
      the store's UNIQUE constraints are authoritative and DuplicateUserError
      is translated to the very same error the pre-check would have raised.

  login [C1] -- lookup, verify, THEN active check. An unknown username is
      verified against DUMMY_HASH so "no such user" and "wrong password" cost
      the same bcrypt work and raise the same InvalidCredentials. UserInactive
      is only reported after a correct password, so it never reveals whether
      an account exists or is disabled to someone who does not hold the
      password.

  refresh -- the refresh token only proves identity. Role, permissions and
      active state are re-read from the store, so a demotion or deactivation
      takes effect at the next refresh.

  logout -- tokens are stateless and nothing server-side can be revoked. The
      call is accepted and logged; the token stays valid until it expires.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from auth.errors import InvalidCredentials, InvalidToken, PhoneAlreadyExists, UserInactive, UsernameAlreadyExists
from auth.errors import conflict_for_field
from auth.models import LoginResult, TokenClaims, UserAccount
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.permissions import Role, effective_permissions
from auth.store import DuplicateUserError, UserRepository
from auth.tokens import TokenType, access_token_ttl, create_access_token, create_refresh_token, decode_token
from core.config import get_settings
from core.deadline import Deadline

logger = logging.getLogger("icafe.auth")

SELF_SERVICE_ROLE = Role.CUSTOMER


class AuthService:
    """Self-service authentication operations over a UserRepository."""

    def __init__(self, store: UserRepository, timeout_seconds: float | None = None) -> None:
        self._store = store
        self._timeout = timeout_seconds if timeout_seconds is not None else get_settings().request_timeout_seconds

    def _deadline(self, deadline: Deadline | None) -> Deadline:
        return deadline if deadline is not None else Deadline.after(self._timeout)

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    def register(
        self,
        username: str,
        password: str,
        phone: str,
        full_name: str,
        *,
        deadline: Deadline | None = None,
    ) -> UserAccount:
        """Create a self-service account with the customer role.

        Raises UsernameAlreadyExists or PhoneAlreadyExists, whether detected by
        the pre-check or by the store's constraint.
        """
        deadline = self._deadline(deadline)

        deadline.check("register")
        if self._store.get_by_username(username) is not None:
            raise UsernameAlreadyExists()
        deadline.check("register")
        if self._store.get_by_phone(phone) is not None:
            raise PhoneAlreadyExists()

        user = UserAccount(
            username=username,
            phone=phone,
            full_name=full_name,
            role=SELF_SERVICE_ROLE,
            hashed_password=hash_password(password),
        )
        deadline.check("register")
        try:
            user.id = self._store.create_user(user)
        except DuplicateUserError as exc:
            logger.info("Registration lost uniqueness race on %s", exc.field)
            raise conflict_for_field(exc.field) from exc

        logger.info("Registered user %s (id=%s)", user.username, user.id)
        return self._store.get_by_id(user.id) or user

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, username: str, password: str, *, deadline: Deadline | None = None) -> LoginResult:
        """Authenticate with username and password and issue a token pair."""
        deadline = self._deadline(deadline)

        deadline.check("login")
        user = self._store.get_by_username(username)
        if user is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            verify_password(password, DUMMY_HASH)
            logger.info("Login failed for %r: bad credentials", username)
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed for %r: bad credentials", username)
            raise InvalidCredentials()
        if not user.is_active:
            logger.info("Login refused for %r: account inactive", username)
            raise UserInactive()

        result = self._issue(user)
        self._record_login(user)
        logger.info("Login succeeded for %s (id=%s)", user.username, user.id)
        return result

    def _record_login(self, user: UserAccount) -> None:
        """Best-effort last_login stamp. A store failure must not fail the login."""
        try:
            self._store.update_last_login(user.id)
        except Exception:
            logger.warning("Could not record last_login for user %s", user.id, exc_info=True)

    # ------------------------------------------------------------------
    # Refresh / validate / logout
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str, *, deadline: Deadline | None = None) -> LoginResult:
        """Redeem a refresh token for a brand-new access + refresh pair.

        No rotation chain is enforced: the old refresh token stays valid until
        it expires, because there is no server-side record to invalidate.
        """
        deadline = self._deadline(deadline)
        claims = decode_token(refresh_token, expected_type=TokenType.REFRESH)

        deadline.check("refresh")
        user = self._store.get_by_id(claims.user_id)
        if user is None:
            logger.info("Refresh refused: user %s no longer exists", claims.user_id)
            raise InvalidToken()
        if not user.is_active:
            logger.info("Refresh refused for %s: account inactive", user.username)
            raise UserInactive()

        logger.debug("Refreshed tokens for %s (id=%s)", user.username, user.id)
        return self._issue(user)

    def validate_token(self, token: str) -> TokenClaims:
        """Return the claims of a valid access token. Raises InvalidToken."""
        return decode_token(token, expected_type=TokenType.ACCESS)

    def logout(self, user_id: int, *, deadline: Deadline | None = None) -> None:
        """Accept a logout. Stateless: issued tokens remain valid until expiry."""
        self._deadline(deadline).check("logout")
        logger.info("Logout for user %s (stateless, tokens expire naturally)", user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, user: UserAccount) -> LoginResult:
        return LoginResult(
            access_token=create_access_token(user),
            refresh_token=create_refresh_token(user),
            expires_in=int(access_token_ttl().total_seconds()),
            user=user,
            permissions=effective_permissions(user),
        )

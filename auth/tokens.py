"""
auth/tokens.py -- Signed access and refresh tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, username, email, role, effective permissions, token type,
       issued-at and expiry. Nothing is stored server-side; the token is the
       only record of its own validity window.

  Verification: jwt.decode() is called with algorithms=[HS256] only, so a
       token whose header names any other algorithm (including "none") is
       rejected before the signature is even checked. Every failure --
       structure, algorithm, signature, expiry, missing or unknown claims,
       wrong token type -- raises the same InvalidToken. The specific reason
       is logged at DEBUG and never returned to the caller.

  Access vs refresh: same key, same verification path. The "type" claim keeps
       a refresh token from being accepted where an access token is expected
       and vice versa. Refresh tokens omit permissions; redemption re-reads
       the user.

SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup [M6][M7].

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum

from jose import JWTError, jwt

from auth.errors import InvalidToken
from auth.models import TokenClaims, UserAccount
from auth.permissions import Role, effective_permissions, parse_permissions
from core.config import get_settings

logger = logging.getLogger("icafe.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

_DECODE_OPTIONS = {
    "require_exp": True,
    "require_iat": True,
    "require_sub": True,
}


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


def access_token_ttl() -> timedelta:
    return timedelta(minutes=_settings.access_token_expire_minutes)


def refresh_token_ttl() -> timedelta:
    return timedelta(hours=_settings.refresh_token_expire_hours)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def encode_token(
    claims: TokenClaims,
    ttl: timedelta,
    *,
    secret_key: str | None = None,
    now: datetime | None = None,
) -> str:
    """Sign claims into a compact, URL-safe JWT valid for ttl from now.

    Args:
        claims:     Identity payload. issued_at / expires_at on the input are
                    ignored; they are stamped here.
        ttl:        Validity window.
        secret_key: Signing key. Defaults to Settings.secret_key.
        now:        Issue time. Defaults to the current UTC time; tests pass a
                    fixed value to produce already-expired tokens.
    """
    issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    payload = {
        "sub": str(claims.user_id),
        "user_id": claims.user_id,
        "username": claims.username,
        "email": claims.email,
        "role": Role(claims.role).value,
        "permissions": sorted(p.value for p in claims.permissions),
        "type": claims.token_type,
        "iat": issued_at,
        "exp": issued_at + ttl,
    }
    return jwt.encode(payload, secret_key or _settings.secret_key, algorithm=_ALGORITHM)


def decode_token(
    token: str,
    *,
    secret_key: str | None = None,
    expected_type: TokenType | None = None,
) -> TokenClaims:
    """Verify a JWT and return its claims.

    Raises InvalidToken on any failure. The caller is never told which check
    failed -- distinguishing "expired" from "bad signature" hands an attacker
    an oracle.
    """
    try:
        payload = jwt.decode(
            token,
            secret_key or _settings.secret_key,
            algorithms=[_ALGORITHM],
            options=_DECODE_OPTIONS,
        )
    except JWTError as exc:
        logger.debug("Token rejected: %s", exc.__class__.__name__)
        raise InvalidToken() from None

    try:
        claims = _payload_to_claims(payload)
    except (KeyError, TypeError, ValueError) as exc:
        logger.debug("Token rejected: malformed claims (%s)", exc.__class__.__name__)
        raise InvalidToken() from None

    if expected_type is not None and claims.token_type != expected_type.value:
        logger.debug("Token rejected: type %r, expected %r", claims.token_type, expected_type.value)
        raise InvalidToken()
    return claims


def _payload_to_claims(payload: dict) -> TokenClaims:
    user_id = payload["user_id"]
    if not isinstance(user_id, int) or str(user_id) != payload["sub"]:
        raise ValueError("subject does not match user_id")
    token_type = TokenType(payload["type"]).value
    return TokenClaims(
        user_id=user_id,
        username=str(payload["username"]),
        email=payload.get("email"),
        role=Role(payload["role"]),
        permissions=parse_permissions(payload.get("permissions") or []),
        token_type=token_type,
        issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


# ---------------------------------------------------------------------------
# Issuance from a user record
# ---------------------------------------------------------------------------


def create_access_token(user: UserAccount, *, ttl: timedelta | None = None) -> str:
    """Issue a short-lived access token carrying the user's effective permissions."""
    claims = TokenClaims(
        user_id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        permissions=effective_permissions(user),
        token_type=TokenType.ACCESS.value,
    )
    return encode_token(claims, ttl or access_token_ttl())


def create_refresh_token(user: UserAccount, *, ttl: timedelta | None = None) -> str:
    """Issue a long-lived refresh token. Carries identity only, no permissions."""
    claims = TokenClaims(
        user_id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        token_type=TokenType.REFRESH.value,
    )
    return encode_token(claims, ttl or refresh_token_ttl())

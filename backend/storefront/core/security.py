"""
Security utilities: owner tokens and owner verification for the admin API.
"""
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt

from storefront.core.config import settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


def create_owner_token(
    owner_id: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT that identifies the store owner."""
    now = datetime.now(timezone.utc)
    to_encode: dict[str, Any] = {
        "sub": owner_id,
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=12)),
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT access token."""
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning("Invalid JWT token", error=str(e))
        return None


def _constant_time_equals(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return hmac.compare_digest(left.encode(), right.encode())


def verify_owner(
    user_id: Optional[str],
    authorization: Optional[str],
) -> bool:
    """
    Check whether the caller is the store owner.

    Accepts an ``X-User-ID`` equal to the configured owner id, or a bearer
    token that is either the static owner token or a JWT whose subject is
    the owner id.
    """
    if not settings.owner_id and not settings.owner_token:
        return False

    if _constant_time_equals(user_id, settings.owner_id):
        return True

    if not authorization or not authorization.lower().startswith("bearer "):
        return False
    token = authorization[7:].strip()

    if _constant_time_equals(token, settings.owner_token):
        return True

    if settings.owner_id and token.count(".") == 2:
        payload = decode_access_token(token)
        if payload and _constant_time_equals(str(payload.get("sub", "")), settings.owner_id):
            return True

    return False

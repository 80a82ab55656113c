"""
Authentication: password hashing, JWT issuance and the session gate.

The session gate admits a caller only when BOTH of these hold:
1. verify_token: the JWT is structurally valid (signature, exp). Stateless.
2. extend_session: a live record exists at session:<token> in Redis. Every
   successful check rewrites it with a fresh TTL (sliding idle timeout).

The two predicates are kept separate so each can be exercised on its own;
authenticate() composes them.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt as pyjwt
from pydantic import BaseModel
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import (
    InternalServiceError,
    InvalidTokenError,
    SessionExpiredError,
)
from app.core.logging import get_logger, mask_email
from app.core.redis_client import get_redis

logger = get_logger(__name__)

SESSION_KEY_PREFIX = "session"

# bcrypt only looks at the first 72 bytes of the input
BCRYPT_MAX_PASSWORD_BYTES = 72


class TokenPayload(BaseModel):
    """JWT claims"""
    user_id: int
    email: str
    exp: int  # Unix timestamp, standard JWT claim
    iat: int
    jti: str


@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller identity resolved by the session gate"""
    user_id: int
    email: str
    token: str


# ==================== Passwords ====================


def hash_password(password: str) -> str:
    """bcrypt hash of the password, as text for the users table"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time check of a password against a stored bcrypt hash"""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash or an over-long password
        return False


# ==================== JWT ====================


def create_access_token(
    user_id: int,
    email: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a signed JWT for the user"""
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not set; cannot issue tokens")
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "user_id": user_id,
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        # two logins in the same second must still get distinct session keys
        "jti": secrets.token_hex(8),
    }
    encoded = pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    logger.info(
        "JWT token created",
        extra_data={"user_id": user_id, "email": mask_email(email)},
    )
    return encoded


def verify_token(token: str) -> Optional[TokenPayload]:
    """Stateless check: signature and expiry. Returns None if invalid or expired."""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is empty; tokens will not be verified")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except (KeyError, ValueError, TypeError) as e:
        logger.warning("JWT payload malformed", extra_data={"error": str(e)})
        return None


# ==================== Sessions ====================


def _session_key(token: str) -> str:
    return f"{SESSION_KEY_PREFIX}:{token}"


def _session_ttl_seconds() -> int:
    return settings.SESSION_TIMEOUT_MINUTES * 60


async def create_session(token: str, user_id: int) -> None:
    """Store session:<token> -> user_id with the sliding TTL. Called on login."""
    redis = await get_redis()
    await redis.set(_session_key(token), str(user_id), ex=_session_ttl_seconds())
    logger.info("Session created", extra_data={"user_id": user_id})


async def extend_session(token: str) -> Optional[int]:
    """Stateful check: read the session record and slide its expiry.

    Returns the stored user id, or None when the record is gone (idle timeout
    or logout). The read and the TTL refresh are one GETEX, so a concurrent
    logout can never be undone by writing the record back.
    """
    redis = await get_redis()
    stored = await redis.getex(_session_key(token), ex=_session_ttl_seconds())
    if stored is None:
        return None
    try:
        return int(stored)
    except ValueError:
        logger.warning("Session record malformed, ignoring")
        return None


async def revoke_session(token: str) -> None:
    """Delete the session record; the JWT alone no longer admits the caller"""
    redis = await get_redis()
    await redis.delete(_session_key(token))
    logger.info("Session revoked")


async def authenticate(token: str) -> AuthenticatedUser:
    """
    Session gate: both predicates must pass.

    Raises:
        InvalidTokenError: JWT forged, malformed or expired
        SessionExpiredError: no live session for this token
        InternalServiceError: Redis unreachable
    """
    payload = verify_token(token)
    if payload is None:
        raise InvalidTokenError()

    try:
        session_user_id = await extend_session(token)
    except RedisError as e:
        raise InternalServiceError("checking session") from e

    if session_user_id is None:
        logger.info(
            "Session missing for valid token",
            extra_data={"user_id": payload.user_id},
        )
        raise SessionExpiredError()

    if session_user_id != payload.user_id:
        logger.warning(
            "Session user does not match token user",
            extra_data={"token_user_id": payload.user_id, "session_user_id": session_user_id},
        )
        raise SessionExpiredError()

    return AuthenticatedUser(user_id=payload.user_id, email=payload.email, token=token)

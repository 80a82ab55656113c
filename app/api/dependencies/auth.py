"""
FastAPI dependency for the session gate

Usage:
    @router.get("/wallet")
    async def get_wallet(
        current_user: AuthenticatedUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        user_id = current_user.user_id
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.auth import AuthenticatedUser, authenticate
from app.core.exceptions import InvalidTokenError

# auto_error=False: a missing or non-Bearer header is answered with our own 401
# body instead of FastAPI's default
security = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Extract the raw token from `Authorization: Bearer <token>`"""
    if credentials is None:
        raise InvalidTokenError("authorization header required")
    token = credentials.credentials.strip()
    if not token or " " in token:
        raise InvalidTokenError("invalid authorization header format")
    return token


async def get_current_user(
    token: str = Depends(get_bearer_token),
) -> AuthenticatedUser:
    """
    Authenticate the caller: JWT must be valid AND the session record live.

    Raises 401 (InvalidTokenError / SessionExpiredError) otherwise. Every
    successful call slides the session expiry forward.
    """
    return await authenticate(token)

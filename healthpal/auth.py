import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from pydantic import BaseModel

from .config import JWT_ACCESS_EXPIRE_MINUTES, JWT_ACCESS_SECRET, JWT_ALGORITHM
from .exceptions import ForbiddenError, UnauthorizedError
from .models import UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """Identity carried by the access token"""

    sub: str
    email: str
    role: UserRole


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create an access token

    Args:
        data: Claims to encode ({sub, email, role})
        expires_delta: Token expiration time (default JWT_ACCESS_EXPIRE_MINUTES)
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=JWT_ACCESS_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, JWT_ACCESS_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[CurrentUser]:
    """
    Verify and decode an access token

    Returns:
        The token identity if valid, None if invalid, expired or missing claims
    """
    try:
        payload = jose_jwt.decode(token, JWT_ACCESS_SECRET, algorithms=[JWT_ALGORITHM])
        return CurrentUser(sub=payload["sub"], email=payload["email"], role=payload["role"])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None
    except (KeyError, ValueError) as e:
        logger.warning(f"JWT payload rejected: {e}")
        return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Get current user from the bearer access token"""
    if not credentials:
        raise UnauthorizedError("Unauthorized")

    user = decode_access_token(credentials.credentials)
    if not user:
        raise UnauthorizedError("Unauthorized")
    return user


def require_role(*roles: UserRole):
    """Dependency factory restricting an endpoint to the given roles"""

    async def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            logger.warning(f"⚠️ {user.role.value} {user.sub} denied, requires {[r.value for r in roles]}")
            raise ForbiddenError("Forbidden")
        return user

    return role_checker

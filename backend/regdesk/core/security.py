"""
Caller identity supplied by the external auth provider.

The provider issues HS256 bearer tokens carrying the caller id in `sub` and
the elevated-privilege flag in `is_admin`. This module only decodes them;
user accounts and passwords live with the provider.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from regdesk.core.config import get_settings
from regdesk.core.exceptions import PermissionDenied

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    id: str
    is_admin: bool = False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Caller]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    return Caller(id=str(subject), is_admin=bool(payload.get("is_admin", False)))


async def get_optional_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Caller]:
    """Caller for endpoints that anonymous participants may also use."""
    if credentials is None:
        return None
    return decode_access_token(credentials.credentials)


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Caller:
    caller = decode_access_token(credentials.credentials) if credentials else None
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return caller


async def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    """Gate for destructive operations and personally-identifying fields."""
    if not caller.is_admin:
        raise PermissionDenied(detail="Admin privileges required")
    return caller

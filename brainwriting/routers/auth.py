"""
Caller identity: signed JWT in the ``access_token`` cookie or a Bearer header.

Token issuing belongs to the surrounding product; this module only decodes
the token and exposes the participant identity to the routes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from brainwriting.config import settings

COOKIE_KEY = "access_token"


@dataclass(frozen=True)
class Identity:
    id: str
    name: Optional[str] = None


def create_access_token(data: dict) -> str:
    """Create a signed JWT with an expiry claim."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(COOKIE_KEY)


async def get_current_identity(request: Request) -> Optional[Identity]:
    """
    Decode the caller's token and return their identity.
    Returns None when no valid token is present.
    """
    token = _token_from_request(request)
    if not token:
        return None
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    return Identity(id=str(subject), name=payload.get("name"))


async def require_identity(
    identity: Optional[Identity] = Depends(get_current_identity),
) -> Identity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    return identity

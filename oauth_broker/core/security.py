"""
Security helpers - session JWT and random tokens
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from .settings import settings


def generate_token(length: int = 32) -> str:
    """Random URL-safe token"""
    return secrets.token_urlsafe(length)


def generate_unusable_password() -> str:
    """Random password for accounts that only sign in through a provider."""
    return secrets.token_hex(32)


class TokenPayload(BaseModel):
    """Session token payload"""

    sub: str  # user_id
    exp: datetime
    iat: datetime
    type: str = "access"


def create_access_token(subject: str | Any, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a session JWT for a user id."""
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return str(encoded_jwt)


def decode_token(token: str) -> Optional[TokenPayload]:
    """Decode a session JWT; None when invalid or expired."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return TokenPayload(**payload)
    except (JWTError, ValueError):
        return None

"""Teacher credentials: password hashing and signed bearer tokens.

The live session engine only sees ``authenticate_token``: given a token it
returns the teacher identity or ``None``.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from live_poll.core.config import settings
from live_poll.core.time import utc_now

logger = logging.getLogger("api")

security = HTTPBearer()


@dataclass(frozen=True)
class TeacherIdentity:
    id: str
    name: str


def _password_bytes(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, stored: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), stored.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(identity: TeacherIdentity, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    now = utc_now()
    payload = {
        "sub": identity.id,
        "name": identity.name,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TeacherIdentity:
    """Decode a bearer token.

    Raises:
        HTTPException: 401 if the token is expired or malformed.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token attempted")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as exc:
        logger.warning("Invalid token attempted: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TeacherIdentity(id=payload["sub"], name=payload.get("name") or "Teacher")


def authenticate_token(token: Optional[str]) -> Optional[TeacherIdentity]:
    if not token:
        return None
    try:
        return decode_token(token)
    except HTTPException:
        return None


async def get_current_teacher(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> TeacherIdentity:
    return decode_token(credentials.credentials)

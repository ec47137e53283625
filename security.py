"""
Password hashing and JWT access tokens.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as SchemaValidationError

from config import settings
from errors import AuthError
from schemas import Identity

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a token carrying the caller's identity claims.

    Args:
        user: A serialized user document (needs id, role, email and name)
        expires_delta: Optional custom lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "id": str(user["id"]),
        "role": user.get("role", "student"),
        "email": user["email"],
        "name": user["name"],
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Identity:
    """Verify signature and expiry; raises AuthError on any failure."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return Identity(**payload)
    except (JWTError, SchemaValidationError, TypeError):
        raise AuthError("Invalid or expired token")

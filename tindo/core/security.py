"""
Tindo API - Security helper (JWT decode only, shared secret)
"""
from jose import jwt, JWTError
from typing import Any
from tindo.core.config import get_settings

settings = get_settings()


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


__all__ = ["decode_token", "JWTError"]

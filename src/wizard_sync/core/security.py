"""JWT verification for dashboard requests.

Tokens are issued by the dashboard's auth service; this service only
verifies them. The ``sub`` claim is the organisation user id that owns
wizards and saved connections.
"""

from __future__ import annotations

from fastapi import HTTPException, status
from jose import JWTError, jwt

from src.wizard_sync.config import get_settings


def decode_token(token: str) -> dict:
    """Decode a JWT with the configured secret and algorithm.

    Raises:
        JWTError: Invalid signature, malformed token or expired.
    """
    settings = get_settings()
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def verify_token(token: str) -> dict:
    """Decode and validate a JWT access token.

    Returns:
        The decoded payload dict.

    Raises:
        HTTPException(401): If the token is invalid, expired, or has no subject.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
    except JWTError:
        raise credentials_exception
    if payload.get("type", "access") != "access":
        raise credentials_exception
    if not payload.get("sub"):
        raise credentials_exception
    return payload

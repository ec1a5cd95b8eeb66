"""
JWT helpers for identifying the acting user.

Accounts are managed elsewhere; this service only needs to know who is
calling, so tokens carry ``sub`` (username) and ``user_id``.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an access token for an actor.

    Args:
        data: Claims to encode, at least ``sub`` and ``user_id``
        expires_delta: Custom lifetime, defaults to access_token_expire_minutes

    Returns:
        Encoded JWT string
    """
    claims = dict(data)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims["exp"] = datetime.now(timezone.utc) + lifetime
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the token claims, or None when the signature or expiry is invalid."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

"""
Bearer tokens carrying a session across HTTP requests
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

from jose import JWTError, jwt

from roadwatch.core.config import settings
from roadwatch.core.errors import AuthError

# Token ids revoked by sign-out in this process
_revoked: Set[str] = set()


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    payload = {
        "sub": user_id,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """
    Validate a token and return its claims.

    Raises:
        AuthError: if the token is invalid, expired or revoked
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthError("Invalid or expired session") from e

    if not claims.get("sub") or claims.get("jti") in _revoked:
        raise AuthError("Invalid or expired session")
    return claims


def revoke_access_token(token: str) -> None:
    claims = decode_access_token(token)
    _revoked.add(claims["jti"])

"""
RoadWatch - Auth Module
Session context and account backend.
"""

from roadwatch.auth.session import (
    CurrentUser,
    IdentityProvider,
    DatabaseIdentityProvider,
    SessionContext,
)
from roadwatch.auth.tokens import (
    create_access_token,
    decode_access_token,
    revoke_access_token,
)

__all__ = [
    "CurrentUser",
    "IdentityProvider",
    "DatabaseIdentityProvider",
    "SessionContext",
    "create_access_token",
    "decode_access_token",
    "revoke_access_token",
]

"""
Session context for the signed-in user
Replaces ambient auth state with an object passed to the workflows
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from roadwatch.core.errors import (
    AccountExistsError,
    AuthError,
    NotAuthorizedError,
    RoadWatchError,
    ValidationError,
)
from roadwatch.database.connection import DatabaseConnection
from roadwatch.database.models import Profile

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the signed-in user."""
    id: str
    email: str
    is_admin: bool = False


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return pwd_context.verify(password, hashed_password)


class IdentityProvider(ABC):
    """Account backend used by SessionContext."""

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> CurrentUser:
        """Create an account; raise ValidationError or AccountExistsError."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> CurrentUser:
        """Check credentials; raise AuthError when they do not match."""

    async def sign_out(self, user: CurrentUser) -> None:
        return None

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[CurrentUser]:
        """Look up an account by id."""


class DatabaseIdentityProvider(IdentityProvider):
    """Accounts stored in the profiles table."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    async def sign_up(self, email: str, password: str) -> CurrentUser:
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise ValidationError("A valid email address is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return await asyncio.to_thread(self._create_profile, email, password)

    async def sign_in(self, email: str, password: str) -> CurrentUser:
        email = (email or "").strip().lower()
        return await asyncio.to_thread(self._authenticate, email, password or "")

    async def get_user(self, user_id: str) -> Optional[CurrentUser]:
        return await asyncio.to_thread(self._load, user_id)

    def _create_profile(self, email: str, password: str) -> CurrentUser:
        profile = Profile(email=email, password_hash=hash_password(password), points=0)
        try:
            with self.db.get_session() as session:
                session.add(profile)
                session.flush()
                user = _to_user(profile)
        except IntegrityError as e:
            raise AccountExistsError() from e
        except SQLAlchemyError as e:
            raise AuthError(str(e)) from e

        logger.info(f"Profile created: {user.id}")
        return user

    def _authenticate(self, email: str, password: str) -> CurrentUser:
        with self.db.get_session() as session:
            profile = session.scalars(select(Profile).where(Profile.email == email)).first()
            if profile is None or not verify_password(password, profile.password_hash):
                raise AuthError("Invalid login credentials")
            return _to_user(profile)

    def _load(self, user_id: str) -> Optional[CurrentUser]:
        with self.db.get_session() as session:
            profile = session.get(Profile, user_id)
            return _to_user(profile) if profile else None


def _to_user(profile: Profile) -> CurrentUser:
    return CurrentUser(id=profile.id, email=profile.email, is_admin=bool(profile.is_admin))


class SessionContext:
    """
    Current session.

    Created at startup with no user, updated on sign-in and
    sign-up, cleared on sign-out.
    """

    def __init__(self, identity: IdentityProvider, user: Optional[CurrentUser] = None):
        self.identity = identity
        self._user = user
        self.error: Optional[str] = None

    @property
    def current_user(self) -> Optional[CurrentUser]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def require_user(self) -> CurrentUser:
        if self._user is None:
            raise AuthError("Please sign in first")
        return self._user

    def require_admin(self) -> CurrentUser:
        user = self.require_user()
        if not user.is_admin:
            raise NotAuthorizedError()
        return user

    async def sign_up(self, email: str, password: str) -> CurrentUser:
        return await self._establish(self.identity.sign_up(email, password))

    async def sign_in(self, email: str, password: str) -> CurrentUser:
        return await self._establish(self.identity.sign_in(email, password))

    async def sign_out(self) -> None:
        if self._user is None:
            return
        user, self._user = self._user, None
        await self.identity.sign_out(user)
        logger.info(f"Signed out: {user.id}")

    async def _establish(self, pending) -> CurrentUser:
        self.error = None
        try:
            self._user = await pending
        except RoadWatchError as e:
            logger.error(f"Auth error: {e.message}")
            self.error = e.message
            raise
        logger.info(f"Signed in: {self._user.id}")
        return self._user

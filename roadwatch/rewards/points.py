"""
Points ledger for reporters
Read-only view of balances and redemptions
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from roadwatch.core.errors import PersistError
from roadwatch.database.connection import DatabaseConnection
from roadwatch.database.models import Profile, Redemption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PointsSummary:
    """Balance shown next to the user's profile."""
    user_id: str
    points: int
    profile_image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "points": self.points,
            "profile_image": self.profile_image,
        }


class PointsLedger:
    """
    Reads points balances and redemption history.

    Accrual and payout happen outside RoadWatch.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    async def get_summary(self, user_id: str) -> Optional[PointsSummary]:
        return await asyncio.to_thread(self._summary, user_id)

    async def list_redemptions(self, user_id: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._redemptions, user_id)

    def _summary(self, user_id: str) -> Optional[PointsSummary]:
        try:
            with self.db.get_session() as session:
                profile = session.get(Profile, user_id)
                if profile is None:
                    return None
                return PointsSummary(
                    user_id=profile.id,
                    points=profile.points or 0,
                    profile_image=profile.profile_image,
                )
        except SQLAlchemyError as e:
            logger.error(f"Error fetching user profile: {e}")
            raise PersistError(str(e)) from e

    def _redemptions(self, user_id: str) -> List[Dict[str, Any]]:
        query = (
            select(Redemption)
            .where(Redemption.user_id == user_id)
            .order_by(Redemption.created_at.desc())
        )
        try:
            with self.db.get_session() as session:
                return [r.to_dict() for r in session.scalars(query)]
        except SQLAlchemyError as e:
            raise PersistError(str(e)) from e

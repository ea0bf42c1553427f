"""
Public report feed
Read-only list of reported potholes shown to signed-in citizens
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from roadwatch.auth.session import SessionContext
from roadwatch.core.constants import ReportStatus, Severity
from roadwatch.core.report import Report
from roadwatch.crowdsource.moderation import StatusFilter
from roadwatch.database.report_store import ReportStore

logger = logging.getLogger(__name__)

DEFAULT_FEED_LIMIT = 50


@dataclass(frozen=True)
class FeedItem:
    """Report as shown in the feed, without reporter or moderation fields."""
    id: str
    description: str
    severity: Severity
    status: ReportStatus
    latitude: float
    longitude: float
    image_url: str
    created_at: datetime

    @classmethod
    def from_report(cls, report: Report) -> "FeedItem":
        return cls(
            id=report.id,
            description=report.description,
            severity=report.severity,
            status=report.status,
            latitude=report.latitude,
            longitude=report.longitude,
            image_url=report.image_url,
            created_at=report.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "severity": self.severity.value,
            "status": self.status.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "image_url": self.image_url,
            "created_at": self.created_at.isoformat(),
        }


class ReportFeed:
    """Newest-first list of reports for any signed-in user."""

    def __init__(self, session: SessionContext, store: ReportStore):
        """
        Args:
            session: Session of the viewer
            store: Report store

        Raises:
            AuthError: if nobody is signed in
        """
        self.viewer = session.require_user()
        self.store = store

    async def recent(
        self,
        status_filter=StatusFilter.ALL,
        limit: Optional[int] = DEFAULT_FEED_LIMIT,
    ) -> List[FeedItem]:
        """
        Fetch reports, newest first.

        Args:
            status_filter: all, reported, in-progress or resolved
            limit: Maximum number of items, None for all

        Raises:
            PersistError: if the store cannot be read
        """
        status_filter = StatusFilter(status_filter)
        reports = await self.store.list_all()
        if status_filter != StatusFilter.ALL:
            reports = [r for r in reports if r.status.value == status_filter.value]
        if limit is not None:
            reports = reports[:limit]

        logger.debug(f"Feed for {self.viewer.id}: {len(reports)} reports")
        return [FeedItem.from_report(r) for r in reports]

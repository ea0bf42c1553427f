"""
Report moderation workflow
Filterable view of all reports with guarded status transitions
"""

import logging
from enum import Enum
from typing import List, Optional

from roadwatch.auth.session import SessionContext
from roadwatch.core.constants import ReportStatus, STATUS_TRANSITIONS
from roadwatch.core.errors import (
    IllegalTransition,
    PersistError,
    ReportNotFound,
    StaleTransition,
)
from roadwatch.core.report import Report
from roadwatch.database.report_store import ReportStore

logger = logging.getLogger(__name__)


class StatusFilter(str, Enum):
    """Filter options of the moderation view."""
    ALL = "all"
    REPORTED = "reported"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


def available_actions(report: Report) -> List[ReportStatus]:
    """Statuses a moderator may move this report to."""
    target = STATUS_TRANSITIONS.get(report.status)
    return [target] if target else []


class ReportModerationWorkflow:
    """
    Admin view over the report collection.

    The view is only ever replaced by refresh(); every
    status change is a store round trip followed by a refresh.
    """

    def __init__(self, session: SessionContext, store: ReportStore):
        """
        Initialize moderation workflow.

        Args:
            session: Session of an administrator
            store: Report store

        Raises:
            AuthError: if nobody is signed in
            NotAuthorizedError: if the user is not an admin
        """
        self.moderator = session.require_admin()
        self.store = store

        self.reports: List[Report] = []
        self.loading = True
        self.error: Optional[str] = None

    async def refresh(self) -> List[Report]:
        """
        Re-fetch all reports, newest first.

        A failed fetch keeps the previous view and sets the error banner.
        """
        self.loading = True
        try:
            self.reports = await self.store.list_all()
            self.error = None
        except PersistError as e:
            logger.error(f"Error fetching reports: {e.message}")
            self.error = f"Could not load reports: {e.message}"
        finally:
            self.loading = False
        return self.reports

    def list_reports(self, status_filter=StatusFilter.ALL) -> List[Report]:
        """
        Reports in the current view matching a filter.

        Args:
            status_filter: all, reported, in-progress or resolved

        Returns:
            Matching reports, newest first
        """
        status_filter = StatusFilter(status_filter)
        if status_filter == StatusFilter.ALL:
            return list(self.reports)
        return [r for r in self.reports if r.status.value == status_filter.value]

    async def advance(self, report_id: str, target) -> Report:
        """
        Move a report one step along its lifecycle.

        Args:
            report_id: Report ID
            target: in-progress or resolved

        Returns:
            Updated report

        Raises:
            IllegalTransition: target is not the next status
            ReportNotFound: no report with that id
            StaleTransition: status changed since it was read
            PersistError: store round trip failed
        """
        target = ReportStatus(target)

        current = await self.store.get(report_id)
        if current is None:
            raise ReportNotFound(report_id)

        if not current.status.can_transition(target):
            logger.warning(
                f"Rejected transition for {report_id}: "
                f"{current.status.value} -> {target.value}"
            )
            raise IllegalTransition(current.status, target)

        updated = await self.store.update_status(report_id, current.status, target)
        if updated is None:
            raise StaleTransition()

        logger.info(
            f"Report {report_id} moved to {target.value} by {self.moderator.id}"
        )
        await self.refresh()
        return updated

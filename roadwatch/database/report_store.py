"""
Report store backed by the pothole_reports table
Every call is a round trip; nothing is cached here
"""

import asyncio
import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from roadwatch.core.constants import ReportStatus
from roadwatch.core.errors import PersistError
from roadwatch.core.report import NewReport, Report, ReportComment
from .connection import DatabaseConnection
from .models import PotholeReport, utcnow

logger = logging.getLogger(__name__)


def _to_report(row: PotholeReport) -> Report:
    return Report(
        id=row.id,
        user_id=row.user_id,
        description=row.description,
        severity=row.severity,
        latitude=row.latitude,
        longitude=row.longitude,
        image_url=row.image_url,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        votes=row.votes or 0,
        comments=[
            ReportComment(
                id=c.id,
                user_id=c.user_id,
                content=c.content,
                created_at=c.created_at,
            )
            for c in row.comments
        ],
    )


class ReportStore:
    """
    Async facade over the relational store.

    SQLAlchemy sessions run in a worker thread so the
    calling event loop stays responsive.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    async def insert(self, new_report: NewReport) -> Report:
        """
        Insert a report row.

        Raises:
            PersistError: if the insert fails
        """
        return await asyncio.to_thread(self._insert, new_report)

    async def list_all(self) -> List[Report]:
        """All reports, newest created first."""
        return await asyncio.to_thread(self._list_all)

    async def get(self, report_id: str) -> Optional[Report]:
        """Report by id, None if missing."""
        return await asyncio.to_thread(self._get, report_id)

    async def update_status(
        self,
        report_id: str,
        expected: ReportStatus,
        target: ReportStatus
    ) -> Optional[Report]:
        """
        Set status only if the row still has the expected status.

        Returns:
            Updated report, or None if no row matched
        """
        return await asyncio.to_thread(self._update_status, report_id, expected, target)

    def _insert(self, new_report: NewReport) -> Report:
        row = PotholeReport(
            user_id=new_report.user_id,
            description=new_report.description,
            severity=new_report.severity,
            latitude=new_report.location.latitude,
            longitude=new_report.location.longitude,
            image_url=new_report.image_url,
            status=new_report.status,
        )
        try:
            with self.db.get_session() as session:
                session.add(row)
                session.flush()
                report = _to_report(row)
        except SQLAlchemyError as e:
            raise PersistError(str(e.orig) if getattr(e, "orig", None) else str(e)) from e

        logger.info(f"Report {report.id} inserted at ({report.latitude}, {report.longitude})")
        return report

    def _list_all(self) -> List[Report]:
        query = (
            select(PotholeReport)
            .options(selectinload(PotholeReport.comments))
            .order_by(PotholeReport.created_at.desc())
        )
        try:
            with self.db.get_session() as session:
                return [_to_report(row) for row in session.scalars(query)]
        except SQLAlchemyError as e:
            raise PersistError(str(e)) from e

    def _get(self, report_id: str) -> Optional[Report]:
        try:
            with self.db.get_session() as session:
                row = session.get(PotholeReport, report_id)
                return _to_report(row) if row else None
        except SQLAlchemyError as e:
            raise PersistError(str(e)) from e

    def _update_status(
        self,
        report_id: str,
        expected: ReportStatus,
        target: ReportStatus
    ) -> Optional[Report]:
        statement = (
            update(PotholeReport)
            .where(PotholeReport.id == report_id, PotholeReport.status == expected)
            .values(status=target, updated_at=utcnow())
        )
        try:
            with self.db.get_session() as session:
                result = session.execute(statement)
                if result.rowcount != 1:
                    return None
                session.flush()
                row = session.get(PotholeReport, report_id, populate_existing=True)
                report = _to_report(row)
        except SQLAlchemyError as e:
            raise PersistError(str(e)) from e

        logger.info(f"Report {report_id} status: {expected.value} -> {target.value}")
        return report

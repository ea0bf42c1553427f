"""
Database module for RoadWatch
Relational storage for profiles, reports and redemptions
"""

from .connection import DatabaseConnection, init_db
from .models import (
    Base,
    Profile,
    PotholeReport,
    Comment,
    Redemption,
)
from .report_store import ReportStore

__all__ = [
    "DatabaseConnection",
    "init_db",
    "Base",
    "Profile",
    "PotholeReport",
    "Comment",
    "Redemption",
    "ReportStore",
]

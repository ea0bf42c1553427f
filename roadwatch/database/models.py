"""
SQLAlchemy models for RoadWatch
Profiles, pothole reports, comments and point redemptions
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, Float, String, Text, Boolean,
    DateTime, ForeignKey, Index, Enum as SQLEnum
)
from sqlalchemy.orm import declarative_base, relationship

from roadwatch.core.constants import Severity, ReportStatus, RedemptionStatus

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Profile(Base):
    """
    Reporter or staff account.

    Points are accrued outside this system and only read here.
    """
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)

    points = Column(Integer, nullable=False, default=0)
    is_admin = Column(Boolean, nullable=False, default=False)
    profile_image = Column(String(500))

    created_at = Column(DateTime, default=utcnow)

    reports = relationship("PotholeReport", back_populates="reporter")

    def __repr__(self):
        return f"<Profile({self.id}, email={self.email}, admin={self.is_admin})>"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "email": self.email,
            "points": self.points,
            "is_admin": self.is_admin,
            "profile_image": self.profile_image,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }


class PotholeReport(Base):
    """
    Road defect reported by a citizen.

    Status only moves forward: reported -> in-progress -> resolved.
    """
    __tablename__ = "pothole_reports"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    reporter = relationship("Profile", back_populates="reports")

    # Location
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    # Report details
    description = Column(Text, nullable=False)
    severity = Column(
        SQLEnum(Severity, values_callable=_enum_values, native_enum=False, length=10),
        nullable=False,
        default=Severity.MEDIUM,
    )
    image_url = Column(String(500), nullable=False)
    status = Column(
        SQLEnum(ReportStatus, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=ReportStatus.REPORTED,
    )
    votes = Column(Integer, nullable=False, default=0)

    comments = relationship(
        "Comment",
        back_populates="report",
        order_by="Comment.created_at",
    )

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_report_status", status),
        Index("idx_report_created_at", created_at),
    )

    def __repr__(self):
        return f"<PotholeReport({self.id}, status={self.status.value}, lat={self.latitude})>"


class Comment(Base):
    """Comment left on a report."""
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=new_id)
    report_id = Column(String(36), ForeignKey("pothole_reports.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    report = relationship("PotholeReport", back_populates="comments")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "report_id": self.report_id,
            "user_id": self.user_id,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }


class Redemption(Base):
    """Points redeemed by a user to a UPI id."""
    __tablename__ = "upi_rewards"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    points_redeemed = Column(Integer, nullable=False)
    upi_id = Column(String(100), nullable=False)
    status = Column(
        SQLEnum(RedemptionStatus, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=RedemptionStatus.PENDING,
    )
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "points_redeemed": self.points_redeemed,
            "upi_id": self.upi_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }

"""
RoadWatch - Report types
Plain report objects passed between the store and the workflows.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from roadwatch.core.constants import Severity, ReportStatus
from roadwatch.core.geo_utils import Geocoordinate


@dataclass(frozen=True)
class ReportComment:
    """Comment attached to a report."""
    id: str
    user_id: str
    content: str
    created_at: datetime


@dataclass(frozen=True)
class NewReport:
    """Row to insert once the photo is uploaded."""
    user_id: str
    description: str
    severity: Severity
    location: Geocoordinate
    image_url: str
    status: ReportStatus = ReportStatus.REPORTED


@dataclass
class Report:
    """Persisted road defect report."""
    id: str
    user_id: str
    description: str
    severity: Severity
    latitude: float
    longitude: float
    image_url: str
    status: ReportStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    votes: int = 0
    comments: List[ReportComment] = field(default_factory=list)

    @property
    def location(self) -> Geocoordinate:
        return Geocoordinate(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "description": self.description,
            "severity": self.severity.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "image_url": self.image_url,
            "status": self.status.value,
            "votes": self.votes,
            "comments": [
                {
                    "id": c.id,
                    "user_id": c.user_id,
                    "content": c.content,
                    "created_at": c.created_at.isoformat() if c.created_at else None,
                }
                for c in self.comments
            ],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

"""
RoadWatch - Constants and Reference Data
Static values used throughout the application.
"""

from enum import Enum
from typing import Dict, Tuple

# =============================================================================
# REPORT ENUMS
# =============================================================================


class Severity(str, Enum):
    """Defect severity chosen by the reporter."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReportStatus(str, Enum):
    """Lifecycle status of a report."""
    REPORTED = "reported"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"

    def can_transition(self, target: "ReportStatus") -> bool:
        """Check if moving to target is a legal forward step."""
        return STATUS_TRANSITIONS.get(self) == target


# Forward-only lifecycle, one step at a time
STATUS_TRANSITIONS: Dict[ReportStatus, ReportStatus] = {
    ReportStatus.REPORTED: ReportStatus.IN_PROGRESS,
    ReportStatus.IN_PROGRESS: ReportStatus.RESOLVED,
}


class RedemptionStatus(str, Enum):
    """Status of a points redemption."""
    PENDING = "pending"
    COMPLETED = "completed"


# Reporter guidance for severity (pothole size and depth)
SEVERITY_GUIDANCE: Dict[Severity, str] = {
    Severity.LOW: "About 1-10 cm in size and depth; commuters can travel over it.",
    Severity.MEDIUM: "About 11-30 cm in size and depth; commuters slow down or move around it.",
    Severity.HIGH: "More than 31 cm in size and depth; commuters will definitely move around it.",
}

# =============================================================================
# CLASSIFIER
# =============================================================================

# Fixed input tensor of the defect model (height, width, channels)
CLASSIFIER_INPUT_SHAPE: Tuple[int, int, int] = (224, 224, 3)

# =============================================================================
# STORAGE
# =============================================================================

PUBLIC_OBJECT_PATH = "storage/v1/object/public"
UPLOAD_OBJECT_PATH = "storage/v1/object"

# Longest original filename kept in a storage key
MAX_KEY_FILENAME_LENGTH = 80

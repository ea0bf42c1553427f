"""
RoadWatch - Core Utilities
Central configuration, logging, errors and shared types.
"""

from roadwatch.core.config import settings
from roadwatch.core.constants import (
    Severity,
    ReportStatus,
    RedemptionStatus,
    CLASSIFIER_INPUT_SHAPE,
)
from roadwatch.core.geo_utils import Geocoordinate, is_valid_coordinate

__all__ = [
    "settings",
    "Severity",
    "ReportStatus",
    "RedemptionStatus",
    "CLASSIFIER_INPUT_SHAPE",
    "Geocoordinate",
    "is_valid_coordinate",
]

"""
RoadWatch - Error taxonomy
Every failure a workflow can surface carries a user-facing message.
"""

from enum import Enum
from typing import Optional


class RoadWatchError(Exception):
    """Base class for all RoadWatch domain errors."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(RoadWatchError):
    """Draft is incomplete; the user corrects it and retries."""
    default_message = "Please provide both an image and location"


class UploadError(RoadWatchError):
    """Object storage rejected or failed the image upload."""
    default_message = "Image upload failed"


class PersistError(RoadWatchError):
    """Relational store round trip failed."""
    default_message = "Could not save the report"


class GeoErrorKind(Enum):
    """Reasons a location query can fail."""
    UNSUPPORTED = "unsupported"
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


GEO_ERROR_MESSAGES = {
    GeoErrorKind.UNSUPPORTED: "Geolocation is not supported by your browser.",
    GeoErrorKind.PERMISSION_DENIED: (
        "Permission to access location was denied. Please enable location services."
    ),
    GeoErrorKind.POSITION_UNAVAILABLE: "Location information is unavailable. Try again later.",
    GeoErrorKind.TIMEOUT: "The request to get your location timed out. Please try again.",
    GeoErrorKind.UNKNOWN: "An unknown error occurred while retrieving location.",
}


class GeoError(RoadWatchError):
    """Location could not be acquired."""

    def __init__(self, kind: GeoErrorKind, message: Optional[str] = None):
        self.kind = kind
        super().__init__(message or GEO_ERROR_MESSAGES[kind])


class MediaErrorKind(Enum):
    """Reasons an image payload can be refused."""
    UNSUPPORTED_FORMAT = "unsupported_format"


class MediaError(RoadWatchError):
    """Selected file is not a usable image."""

    def __init__(
        self,
        kind: MediaErrorKind = MediaErrorKind.UNSUPPORTED_FORMAT,
        message: Optional[str] = None
    ):
        self.kind = kind
        super().__init__(message or "The selected file is not a supported image.")


class ClassifierError(RoadWatchError):
    """Inference could not produce a verdict. Never fatal."""
    default_message = "Image check unavailable"


class TransitionError(RoadWatchError):
    """Requested status change was refused."""
    default_message = "Status change not allowed"


class IllegalTransition(TransitionError):
    """Status change outside reported -> in-progress -> resolved."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move report from '{current.value}' to '{target.value}'"
        )


class ReportNotFound(TransitionError):
    """No report with the given id."""

    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__(f"Report {report_id} not found")


class StaleTransition(TransitionError):
    """Report changed status between read and update."""
    default_message = "Report was updated by someone else. Refresh and try again."


class AuthError(RoadWatchError):
    """Sign-in, sign-up or session failure."""
    default_message = "Authentication failed"


class AccountExistsError(RoadWatchError):
    """Sign-up email is already registered."""
    default_message = "User already registered"


class NotAuthorizedError(RoadWatchError):
    """Signed-in user lacks the required role."""
    default_message = "Administrator access required"

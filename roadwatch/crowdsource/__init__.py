"""
RoadWatch - Crowdsource Module
Citizen report submission, the public feed and staff moderation.
"""

from roadwatch.crowdsource.submission import (
    DraftSubmission,
    ReportSubmissionWorkflow,
    SubmissionResult,
    SubmissionState,
)
from roadwatch.crowdsource.moderation import (
    ReportModerationWorkflow,
    StatusFilter,
    available_actions,
)
from roadwatch.crowdsource.feed import FeedItem, ReportFeed

__all__ = [
    # Submission
    "DraftSubmission",
    "ReportSubmissionWorkflow",
    "SubmissionResult",
    "SubmissionState",
    # Moderation
    "ReportModerationWorkflow",
    "StatusFilter",
    "available_actions",
    # Feed
    "FeedItem",
    "ReportFeed",
]

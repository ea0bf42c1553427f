"""
Report submission workflow
Takes a draft from form entry through upload and insert
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from roadwatch.auth.session import SessionContext
from roadwatch.core.constants import Severity
from roadwatch.core.errors import (
    GeoError,
    MediaError,
    PersistError,
    RoadWatchError,
    UploadError,
    ValidationError,
)
from roadwatch.core.geo_utils import Geocoordinate
from roadwatch.core.report import NewReport, Report
from roadwatch.database.report_store import ReportStore
from roadwatch.geolocation.location_capture import LocationProvider, acquire_location
from roadwatch.media.capture import CaptureSource, CapturedImage, ingest
from roadwatch.ml.defect_classifier import DefectClassifier, Verdict
from roadwatch.storage.object_storage import ObjectStorage, build_object_key

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    """State of a draft submission."""
    EDITING = "editing"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


IN_FLIGHT_STATES = frozenset({
    SubmissionState.VALIDATING,
    SubmissionState.UPLOADING,
    SubmissionState.PERSISTING,
})


@dataclass
class DraftSubmission:
    """
    Report being entered in one form session.

    Kept intact on failure so a retry needs no re-entry.
    """
    description: str = ""
    severity: Severity = Severity.MEDIUM
    image: Optional[CapturedImage] = None
    location: Optional[Geocoordinate] = None

    # Classifier advice
    verdict: Verdict = Verdict.UNKNOWN
    warning: Optional[str] = None

    state: SubmissionState = SubmissionState.EDITING
    error: Optional[str] = None

    # Set once storage accepted the photo; reused if the insert is retried
    uploaded_image_url: Optional[str] = None

    @property
    def in_flight(self) -> bool:
        return self.state in IN_FLIGHT_STATES

    @property
    def preview(self) -> Optional[str]:
        return self.image.preview if self.image else None

    def reset(self) -> None:
        """Clear all entered data."""
        self.description = ""
        self.severity = Severity.MEDIUM
        self.image = None
        self.location = None
        self.verdict = Verdict.UNKNOWN
        self.warning = None
        self.state = SubmissionState.EDITING
        self.error = None
        self.uploaded_image_url = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "description": self.description,
            "severity": self.severity.value,
            "image": self.image.to_dict() if self.image else None,
            "location": self.location.to_dict() if self.location else None,
            "verdict": self.verdict.value,
            "warning": self.warning,
            "state": self.state.value,
            "error": self.error,
            "image_uploaded": self.uploaded_image_url is not None,
        }


@dataclass
class SubmissionResult:
    """Outcome of one submit() call."""
    state: SubmissionState
    report: Optional[Report] = None
    error: Optional[RoadWatchError] = None
    ignored: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == SubmissionState.SUCCEEDED and self.report is not None


class ReportSubmissionWorkflow:
    """
    Drives one DraftSubmission to a persisted report.

    EDITING -> VALIDATING -> UPLOADING -> PERSISTING -> SUCCEEDED | FAILED

    Failures never escape submit(); they land in the draft's
    error message and the returned SubmissionResult.
    """

    def __init__(
        self,
        session: SessionContext,
        storage: ObjectStorage,
        store: ReportStore,
        classifier: Optional[DefectClassifier] = None,
        on_success: Optional[Callable[[Report], None]] = None,
        draft: Optional[DraftSubmission] = None
    ):
        """
        Initialize submission workflow.

        Args:
            session: Session of the reporting user
            storage: Object storage for the photo
            store: Report store
            classifier: Advisory defect classifier
            on_success: Called with the persisted report
            draft: Existing draft to continue
        """
        self.session = session
        self.storage = storage
        self.store = store
        self.classifier = classifier
        self.on_success = on_success
        self.draft = draft or DraftSubmission()

        self._classification: Optional[asyncio.Task] = None
        self._discarded = False

        # Bumped when a submit starts sending and when the draft resets
        self._generation = 0

    @property
    def discarded(self) -> bool:
        return self._discarded

    # =========================================================================
    # Editing
    # =========================================================================

    def _editable(self) -> bool:
        if self._discarded:
            return False
        if self.draft.in_flight:
            logger.debug("Draft edit ignored while submission is in flight")
            return False
        if self.draft.state in (SubmissionState.SUCCEEDED, SubmissionState.FAILED):
            self.draft.state = SubmissionState.EDITING
        return True

    def set_description(self, description: str) -> bool:
        if not self._editable():
            return False
        self.draft.description = description or ""
        return True

    def set_severity(self, severity) -> bool:
        if not self._editable():
            return False
        try:
            self.draft.severity = Severity(severity)
        except ValueError:
            self.draft.error = f"Unknown severity: {severity}"
            return False
        return True

    def set_location(self, location: Geocoordinate) -> bool:
        if not self._editable():
            return False
        self.draft.location = location
        self.draft.error = None
        return True

    async def attach_image(
        self,
        data: bytes,
        filename: str = "photo.jpg",
        content_type: Optional[str] = None,
        source: CaptureSource = CaptureSource.FILE_PICKER
    ) -> bool:
        """
        Ingest a photo and start advisory classification.

        Returns:
            True if the photo replaced the draft's image
        """
        if not self._editable():
            return False

        try:
            image = ingest(data, filename=filename, content_type=content_type, source=source)
        except MediaError as e:
            self.draft.error = e.message
            return False

        draft = self.draft
        draft.image = image
        draft.uploaded_image_url = None
        draft.verdict = Verdict.UNKNOWN
        draft.warning = None
        draft.error = None

        if self._classification is not None and not self._classification.done():
            self._classification.cancel()
        if self.classifier is not None:
            self._classification = asyncio.get_running_loop().create_task(
                self._classify(image)
            )
        return True

    async def _classify(self, image: CapturedImage) -> None:
        try:
            result = await asyncio.to_thread(self.classifier.classify, image.decoded)
        except Exception as e:
            logger.error(f"Error verifying image: {e}")
            return

        # A newer photo or a discarded form makes this result stale
        if self._discarded or self.draft.image is not image:
            return

        self.draft.verdict = result.verdict
        if result.should_warn:
            self.draft.warning = result.warnings[0] if result.warnings else None
        logger.info(f"Photo '{image.filename}' verdict: {result.verdict.value}")

    async def wait_for_classification(self) -> Verdict:
        """Wait for the pending classification, if any."""
        if self._classification is not None:
            await asyncio.wait({self._classification})
        return self.draft.verdict

    def _is_stale(self, generation: int) -> bool:
        """Check if the draft moved on while a query was pending."""
        return self._discarded or self.draft.in_flight or generation != self._generation

    async def capture_location(
        self,
        provider: Optional[LocationProvider],
        timeout: Optional[float] = None
    ) -> Optional[Geocoordinate]:
        """
        Acquire and attach the current position.

        Returns:
            The coordinate, or None with the reason in draft.error
        """
        if not self._editable():
            return None

        generation = self._generation

        try:
            location = await acquire_location(provider, timeout=timeout)
        except GeoError as e:
            if not self._is_stale(generation):
                self.draft.error = e.message
            return None

        if self._is_stale(generation):
            logger.info("Late location fix dropped")
            return None

        self.draft.location = location
        self.draft.error = None
        logger.info(f"Location captured: {location.to_tuple()}")
        return location

    # =========================================================================
    # Submission
    # =========================================================================

    def _validate(self):
        draft = self.draft
        if draft.image is None or draft.location is None:
            raise ValidationError("Please provide both an image and location")
        if not draft.description.strip():
            raise ValidationError("Please describe the pothole")
        if not self.session.is_authenticated:
            raise ValidationError("Please sign in to submit a report")
        return self.session.current_user

    async def submit(self) -> SubmissionResult:
        """
        Upload the photo and insert the report.

        Ignored while a previous submit of this draft is in flight.
        """
        draft = self.draft

        if self._discarded or draft.in_flight:
            logger.info("Duplicate or abandoned submit ignored")
            return SubmissionResult(state=draft.state, ignored=True)

        draft.state = SubmissionState.VALIDATING
        draft.error = None

        try:
            user = self._validate()
        except ValidationError as e:
            draft.state = SubmissionState.EDITING
            draft.error = e.message
            return SubmissionResult(state=draft.state, error=e)

        image = draft.image
        new_report_fields = {
            "user_id": user.id,
            "description": draft.description.strip(),
            "severity": draft.severity,
            "location": draft.location,
        }

        self._generation += 1
        image_url = draft.uploaded_image_url
        if image_url is None:
            draft.state = SubmissionState.UPLOADING
            key = build_object_key(image.filename)
            try:
                image_url = await self.storage.upload(key, image.raw_bytes, image.content_type)
            except UploadError as e:
                return self._fail(e)
            except Exception as e:
                logger.exception("Unexpected storage failure")
                return self._fail(UploadError(str(e)))

            if self._discarded:
                return SubmissionResult(state=SubmissionState.UPLOADING, ignored=True)
            draft.uploaded_image_url = image_url
        else:
            logger.info(f"Retrying insert with existing upload {image_url}")

        draft.state = SubmissionState.PERSISTING
        try:
            report = await self.store.insert(NewReport(image_url=image_url, **new_report_fields))
        except PersistError as e:
            logger.warning(f"Insert failed after upload; {image_url} is unreferenced until retry")
            return self._fail(e)
        except Exception as e:
            logger.exception("Unexpected store failure")
            return self._fail(PersistError(str(e)))

        if self._discarded:
            logger.info(f"Report {report.id} persisted after the form was discarded")
            return SubmissionResult(state=SubmissionState.SUCCEEDED, report=report)

        draft.reset()
        self._generation += 1
        draft.state = SubmissionState.SUCCEEDED
        logger.info(f"Report {report.id} submitted by {user.id}")

        if self.on_success is not None:
            try:
                self.on_success(report)
            except Exception:
                logger.exception("Submission callback failed")

        return SubmissionResult(state=SubmissionState.SUCCEEDED, report=report)

    def _fail(self, error: RoadWatchError) -> SubmissionResult:
        if self._discarded:
            return SubmissionResult(state=SubmissionState.FAILED, error=error, ignored=True)
        self.draft.state = SubmissionState.FAILED
        self.draft.error = error.message
        logger.error(f"Submission failed: {error.message}")
        return SubmissionResult(state=SubmissionState.FAILED, error=error)

    def discard(self) -> None:
        """Abandon the form; later completions leave no trace."""
        self._discarded = True
        if self._classification is not None and not self._classification.done():
            self._classification.cancel()
        logger.debug("Draft discarded")

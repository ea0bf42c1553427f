"""
Tests for the report submission workflow
"""
import asyncio
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

from conftest import FakeModel, PUBLIC_BASE_URL
from roadwatch.auth.session import CurrentUser, SessionContext
from roadwatch.core.constants import ReportStatus, Severity
from roadwatch.core.errors import PersistError, UploadError, ValidationError
from roadwatch.core.geo_utils import Geocoordinate
from roadwatch.core.report import Report
from roadwatch.crowdsource.submission import (
    DraftSubmission,
    ReportSubmissionWorkflow,
    SubmissionState,
)
from roadwatch.core.errors import GeoError, GeoErrorKind
from roadwatch.geolocation.location_capture import DevicePositionProvider, LocationProvider
from roadwatch.media.capture import CaptureSource
from roadwatch.ml.defect_classifier import DefectClassifier, REJECT_WARNING, Verdict
from roadwatch.storage.object_storage import ObjectStorage

KORAMANGALA = Geocoordinate(latitude=12.9253, longitude=77.6164)
PARIS = Geocoordinate(latitude=48.8566, longitude=2.3522)


class GatedProvider(LocationProvider):
    """Answers only once released."""

    def __init__(self, coordinate=None, error=None):
        self.coordinate = coordinate
        self.error = error
        self.release = asyncio.Event()

    async def current_position(self):
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.coordinate


def _signed_in_session():
    return SessionContext(MagicMock(), CurrentUser(id="user-1", email="citizen@example.org"))


def _stored_report(new_report, report_id="report-1"):
    return Report(
        id=report_id,
        user_id=new_report.user_id,
        description=new_report.description,
        severity=new_report.severity,
        latitude=new_report.location.latitude,
        longitude=new_report.location.longitude,
        image_url=new_report.image_url,
        status=new_report.status,
        created_at=datetime(2024, 5, 1, 9, 0),
    )


def _mock_storage(url="https://cdn.example.org/photo.jpg"):
    storage = MagicMock(spec=ObjectStorage)
    storage.upload = AsyncMock(return_value=url)
    return storage


def _mock_store():
    store = MagicMock()
    store.insert = AsyncMock(side_effect=lambda new_report: _stored_report(new_report))
    return store


class TestSubmissionEndToEnd:
    """Submission against a real database and local bucket."""

    def test_complete_draft_is_persisted(self, citizen_session, storage, store, jpeg_bytes):
        """Test the full Editing to Succeeded path."""
        submitted = []
        workflow = ReportSubmissionWorkflow(
            citizen_session,
            storage,
            store,
            classifier=DefectClassifier(model=FakeModel(0.93)),
            on_success=submitted.append,
        )

        async def scenario():
            workflow.set_location(KORAMANGALA)
            await workflow.attach_image(jpeg_bytes, filename="img1.jpg", content_type="image/jpeg")
            await workflow.wait_for_classification()
            workflow.set_description("Large pothole")
            workflow.set_severity("high")
            return await workflow.submit()

        result = asyncio.run(scenario())

        assert result.succeeded
        report = result.report
        assert report.status == ReportStatus.REPORTED
        assert report.severity == Severity.HIGH
        assert report.description == "Large pothole"
        assert report.location == KORAMANGALA
        assert report.user_id == citizen_session.current_user.id
        assert report.image_url.startswith(
            f"{PUBLIC_BASE_URL}/storage/v1/object/public/pothole-images/"
        )
        assert report.image_url.endswith("img1.jpg")

        key = report.image_url.rsplit("/", 1)[-1]
        assert storage.path_for(key).read_bytes() == jpeg_bytes

        stored = asyncio.run(store.list_all())
        assert [r.id for r in stored] == [report.id]
        assert submitted == [report]

    def test_success_resets_draft(self, citizen_session, storage, store, jpeg_bytes):
        """Test a successful submit clears the form."""
        workflow = ReportSubmissionWorkflow(citizen_session, storage, store)

        async def scenario():
            workflow.set_location(KORAMANGALA)
            await workflow.attach_image(jpeg_bytes)
            workflow.set_description("Crater by the bus stop")
            return await workflow.submit()

        asyncio.run(scenario())
        draft = workflow.draft

        assert draft.state == SubmissionState.SUCCEEDED
        assert draft.description == ""
        assert draft.severity == Severity.MEDIUM
        assert draft.image is None
        assert draft.location is None
        assert draft.error is None


class TestSubmissionValidation:
    """Incomplete drafts never reach storage or the store."""

    def setup_method(self):
        """Setup test fixtures."""
        self.storage = _mock_storage()
        self.store = _mock_store()
        self.workflow = ReportSubmissionWorkflow(_signed_in_session(), self.storage, self.store)

    @pytest.mark.parametrize("with_image,with_location", [
        (False, True),
        (True, False),
        (False, False),
    ])
    def test_missing_image_or_location(self, jpeg_bytes, with_image, with_location):
        """Test missing photo or position fails validation."""
        async def scenario():
            self.workflow.set_description("Deep hole")
            if with_image:
                await self.workflow.attach_image(jpeg_bytes)
            if with_location:
                self.workflow.set_location(KORAMANGALA)
            return await self.workflow.submit()

        result = asyncio.run(scenario())

        assert isinstance(result.error, ValidationError)
        assert result.error.message == "Please provide both an image and location"
        assert self.workflow.draft.state == SubmissionState.EDITING
        assert self.workflow.draft.error == "Please provide both an image and location"
        self.storage.upload.assert_not_awaited()
        self.store.insert.assert_not_awaited()

    def test_blank_description(self, jpeg_bytes):
        """Test whitespace-only description fails validation."""
        async def scenario():
            await self.workflow.attach_image(jpeg_bytes)
            self.workflow.set_location(KORAMANGALA)
            self.workflow.set_description("   ")
            return await self.workflow.submit()

        result = asyncio.run(scenario())

        assert isinstance(result.error, ValidationError)
        self.storage.upload.assert_not_awaited()

    def test_signed_out_user(self, jpeg_bytes):
        """Test submit without a session user fails validation."""
        workflow = ReportSubmissionWorkflow(SessionContext(MagicMock()), self.storage, self.store)

        async def scenario():
            await workflow.attach_image(jpeg_bytes)
            workflow.set_location(KORAMANGALA)
            workflow.set_description("Deep hole")
            return await workflow.submit()

        result = asyncio.run(scenario())

        assert isinstance(result.error, ValidationError)
        assert workflow.draft.error == "Please sign in to submit a report"
        self.storage.upload.assert_not_awaited()

    def test_invalid_severity_is_refused(self):
        """Test unknown severity leaves the previous value."""
        assert self.workflow.set_severity("catastrophic") is False
        assert self.workflow.draft.severity == Severity.MEDIUM
        assert self.workflow.draft.error == "Unknown severity: catastrophic"

    def test_undecodable_photo_is_refused(self):
        """Test a non-image file is rejected at attach time."""
        attached = asyncio.run(self.workflow.attach_image(b"not an image", filename="notes.txt"))

        assert attached is False
        assert self.workflow.draft.image is None
        assert self.workflow.draft.error == "The selected file is not a supported image."


class TestSubmissionFailures:
    """Upload and insert failures keep the draft for retry."""

    def setup_method(self):
        """Setup test fixtures."""
        self.storage = _mock_storage()
        self.store = _mock_store()
        self.workflow = ReportSubmissionWorkflow(_signed_in_session(), self.storage, self.store)

    async def _fill(self, jpeg_bytes):
        await self.workflow.attach_image(jpeg_bytes, filename="img1.jpg")
        self.workflow.set_location(KORAMANGALA)
        self.workflow.set_description("Large pothole")
        self.workflow.set_severity(Severity.HIGH)

    def test_upload_failure_keeps_draft(self, jpeg_bytes):
        """Test storage rejection fails without inserting."""
        self.storage.upload.side_effect = UploadError("Bucket not found")

        async def scenario():
            await self._fill(jpeg_bytes)
            return await self.workflow.submit()

        result = asyncio.run(scenario())
        draft = self.workflow.draft

        assert result.state == SubmissionState.FAILED
        assert isinstance(result.error, UploadError)
        assert draft.state == SubmissionState.FAILED
        assert draft.error == "Bucket not found"
        assert draft.description == "Large pothole"
        assert draft.severity == Severity.HIGH
        assert draft.location == KORAMANGALA
        assert draft.image is not None
        self.store.insert.assert_not_awaited()

    def test_unexpected_storage_exception_is_wrapped(self, jpeg_bytes):
        """Test arbitrary storage errors surface as UploadError."""
        self.storage.upload.side_effect = RuntimeError("connection reset")

        async def scenario():
            await self._fill(jpeg_bytes)
            return await self.workflow.submit()

        result = asyncio.run(scenario())

        assert isinstance(result.error, UploadError)
        assert self.workflow.draft.error == "connection reset"

    def test_retry_after_upload_failure(self, jpeg_bytes):
        """Test a failed draft can be resubmitted unchanged."""
        self.storage.upload.side_effect = [UploadError("timeout"), "https://cdn.example.org/a.jpg"]

        async def scenario():
            await self._fill(jpeg_bytes)
            first = await self.workflow.submit()
            second = await self.workflow.submit()
            return first, second

        first, second = asyncio.run(scenario())

        assert first.state == SubmissionState.FAILED
        assert second.succeeded
        assert second.report.image_url == "https://cdn.example.org/a.jpg"

    def test_persist_failure_retry_reuses_upload(self, jpeg_bytes):
        """Test insert retry does not upload the photo twice."""
        calls = []

        async def flaky_insert(new_report):
            calls.append(new_report)
            if len(calls) == 1:
                raise PersistError("insert failed")
            return _stored_report(new_report)

        self.store.insert = AsyncMock(side_effect=flaky_insert)

        async def scenario():
            await self._fill(jpeg_bytes)
            first = await self.workflow.submit()
            retained = self.workflow.draft.uploaded_image_url
            second = await self.workflow.submit()
            return first, retained, second

        first, retained, second = asyncio.run(scenario())

        assert first.state == SubmissionState.FAILED
        assert isinstance(first.error, PersistError)
        assert retained == "https://cdn.example.org/photo.jpg"
        assert second.succeeded
        assert self.storage.upload.await_count == 1
        assert [c.image_url for c in calls] == [retained, retained]

    def test_new_photo_forces_new_upload(self, jpeg_bytes, png_bytes):
        """Test replacing the photo drops the retained upload URL."""
        self.store.insert.side_effect = PersistError("insert failed")

        async def scenario():
            await self._fill(jpeg_bytes)
            await self.workflow.submit()
            await self.workflow.attach_image(png_bytes, filename="closer.png")
            return self.workflow.draft

        draft = asyncio.run(scenario())

        assert draft.uploaded_image_url is None
        assert draft.state == SubmissionState.EDITING
        assert draft.image.content_type == "image/png"

    def test_callback_error_does_not_fail_submission(self, jpeg_bytes):
        """Test a failing success callback is contained."""
        self.workflow.on_success = MagicMock(side_effect=RuntimeError("toast failed"))

        async def scenario():
            await self._fill(jpeg_bytes)
            return await self.workflow.submit()

        result = asyncio.run(scenario())

        assert result.succeeded
        self.workflow.on_success.assert_called_once_with(result.report)


class TestSubmissionConcurrency:
    """In-flight submissions, edits and discards."""

    def setup_method(self):
        """Setup test fixtures."""
        self.storage = _mock_storage()
        self.store = _mock_store()
        self.on_success = MagicMock()
        self.workflow = ReportSubmissionWorkflow(
            _signed_in_session(), self.storage, self.store, on_success=self.on_success
        )

    def _hold_upload(self, release):
        async def slow_upload(key, data, content_type):
            await release.wait()
            return f"https://cdn.example.org/{key}"
        self.storage.upload = AsyncMock(side_effect=slow_upload)

    async def _fill(self, jpeg_bytes):
        await self.workflow.attach_image(jpeg_bytes)
        self.workflow.set_location(KORAMANGALA)
        self.workflow.set_description("Pothole on the flyover ramp")

    def test_duplicate_submit_is_ignored(self, jpeg_bytes):
        """Test a second submit while uploading has no effect."""
        async def scenario():
            release = asyncio.Event()
            self._hold_upload(release)
            await self._fill(jpeg_bytes)

            first = asyncio.create_task(self.workflow.submit())
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            state_while_uploading = self.workflow.draft.state
            duplicate = await self.workflow.submit()
            release.set()
            return state_while_uploading, duplicate, await first

        state_while_uploading, duplicate, first = asyncio.run(scenario())

        assert state_while_uploading == SubmissionState.UPLOADING
        assert duplicate.ignored
        assert first.succeeded
        assert self.storage.upload.await_count == 1
        assert self.store.insert.await_count == 1

    def test_edits_ignored_while_in_flight(self, jpeg_bytes):
        """Test the draft cannot change during upload."""
        async def scenario():
            release = asyncio.Event()
            self._hold_upload(release)
            await self._fill(jpeg_bytes)

            task = asyncio.create_task(self.workflow.submit())
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            accepted = self.workflow.set_description("changed")
            release.set()
            result = await task
            return accepted, result

        accepted, result = asyncio.run(scenario())

        assert accepted is False
        assert result.report.description == "Pothole on the flyover ramp"

    def test_discard_during_upload(self, jpeg_bytes):
        """Test a late upload after discard leaves no trace."""
        async def scenario():
            release = asyncio.Event()
            self._hold_upload(release)
            await self._fill(jpeg_bytes)

            task = asyncio.create_task(self.workflow.submit())
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            self.workflow.discard()
            release.set()
            return await task

        result = asyncio.run(scenario())

        assert result.ignored
        assert self.workflow.draft.description == "Pothole on the flyover ramp"
        self.store.insert.assert_not_awaited()
        self.on_success.assert_not_called()

    def test_submit_after_discard_is_ignored(self, jpeg_bytes):
        """Test a discarded workflow refuses to submit."""
        async def scenario():
            await self._fill(jpeg_bytes)
            self.workflow.discard()
            return await self.workflow.submit()

        result = asyncio.run(scenario())

        assert result.ignored
        self.storage.upload.assert_not_awaited()

    def test_late_location_after_success_is_dropped(self, jpeg_bytes):
        """Test a fix arriving after success leaves the reset draft empty."""
        async def scenario():
            await self._fill(jpeg_bytes)
            provider = GatedProvider(PARIS)
            fix = asyncio.create_task(self.workflow.capture_location(provider, timeout=5))
            await asyncio.sleep(0)
            result = await self.workflow.submit()
            provider.release.set()
            return result, await fix

        result, location = asyncio.run(scenario())
        draft = self.workflow.draft

        assert result.succeeded
        assert result.report.location == KORAMANGALA
        assert location is None
        assert draft.state == SubmissionState.SUCCEEDED
        assert draft.location is None
        assert draft.error is None

    def test_late_location_during_upload_is_dropped(self, jpeg_bytes):
        """Test a fix arriving mid-upload does not edit the draft."""
        async def scenario():
            release_upload = asyncio.Event()
            self._hold_upload(release_upload)
            await self._fill(jpeg_bytes)
            provider = GatedProvider(PARIS)

            fix = asyncio.create_task(self.workflow.capture_location(provider, timeout=5))
            await asyncio.sleep(0)
            submission = asyncio.create_task(self.workflow.submit())
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            state = self.workflow.draft.state

            provider.release.set()
            location = await fix
            location_while_uploading = self.workflow.draft.location

            release_upload.set()
            return state, location, location_while_uploading, await submission

        state, location, location_while_uploading, result = asyncio.run(scenario())

        assert state == SubmissionState.UPLOADING
        assert location is None
        assert location_while_uploading == KORAMANGALA
        assert result.report.location == KORAMANGALA

    def test_late_location_error_after_success_is_dropped(self, jpeg_bytes):
        """Test a late failure does not put an error on the reset draft."""
        async def scenario():
            await self._fill(jpeg_bytes)
            provider = GatedProvider(error=GeoError(GeoErrorKind.PERMISSION_DENIED))
            fix = asyncio.create_task(self.workflow.capture_location(provider, timeout=5))
            await asyncio.sleep(0)
            await self.workflow.submit()
            provider.release.set()
            return await fix

        assert asyncio.run(scenario()) is None
        assert self.workflow.draft.error is None

    def test_pending_location_survives_validation_failure(self, jpeg_bytes):
        """Test a fix still lands after a submit that never left validation."""
        async def scenario():
            await self.workflow.attach_image(jpeg_bytes)
            self.workflow.set_description("Pothole on the flyover ramp")
            provider = GatedProvider(KORAMANGALA)
            fix = asyncio.create_task(self.workflow.capture_location(provider, timeout=5))
            await asyncio.sleep(0)
            rejected = await self.workflow.submit()
            provider.release.set()
            return rejected, await fix

        rejected, location = asyncio.run(scenario())

        assert isinstance(rejected.error, ValidationError)
        assert location == KORAMANGALA
        assert self.workflow.draft.location == KORAMANGALA


class TestSubmissionClassification:
    """The classifier only ever advises."""

    def setup_method(self):
        """Setup test fixtures."""
        self.storage = _mock_storage()
        self.store = _mock_store()

    def _workflow(self, model):
        return ReportSubmissionWorkflow(
            _signed_in_session(),
            self.storage,
            self.store,
            classifier=DefectClassifier(model=model),
        )

    async def _fill_and_classify(self, workflow, jpeg_bytes):
        await workflow.attach_image(jpeg_bytes)
        verdict = await workflow.wait_for_classification()
        workflow.set_location(KORAMANGALA)
        workflow.set_description("Pothole")
        return verdict

    def test_accept_sets_no_warning(self, jpeg_bytes):
        """Test a road photo is accepted silently."""
        workflow = self._workflow(FakeModel(0.97))

        verdict = asyncio.run(self._fill_and_classify(workflow, jpeg_bytes))

        assert verdict == Verdict.ACCEPT
        assert workflow.draft.warning is None

    def test_reject_warns_but_submits(self, jpeg_bytes):
        """Test a rejected photo still submits."""
        workflow = self._workflow(FakeModel(0.08))

        async def scenario():
            verdict = await self._fill_and_classify(workflow, jpeg_bytes)
            warning = workflow.draft.warning
            return verdict, warning, await workflow.submit()

        verdict, warning, result = asyncio.run(scenario())

        assert verdict == Verdict.REJECT
        assert warning == REJECT_WARNING
        assert result.succeeded

    def test_classifier_failure_does_not_block(self, jpeg_bytes):
        """Test inference failure leaves the verdict unknown."""
        workflow = self._workflow(FakeModel(error=RuntimeError("model crashed")))

        async def scenario():
            verdict = await self._fill_and_classify(workflow, jpeg_bytes)
            return verdict, await workflow.submit()

        verdict, result = asyncio.run(scenario())

        assert verdict == Verdict.UNKNOWN
        assert workflow.draft.warning is None
        assert result.succeeded

    def test_submit_without_classifier(self, jpeg_bytes):
        """Test submission works with no classifier configured."""
        workflow = ReportSubmissionWorkflow(_signed_in_session(), self.storage, self.store)

        async def scenario():
            verdict = await self._fill_and_classify(workflow, jpeg_bytes)
            return verdict, await workflow.submit()

        verdict, result = asyncio.run(scenario())

        assert verdict == Verdict.UNKNOWN
        assert result.succeeded


class TestSubmissionLocation:
    """Location capture into the draft."""

    def setup_method(self):
        """Setup test fixtures."""
        self.workflow = ReportSubmissionWorkflow(_signed_in_session(), _mock_storage(), _mock_store())

    def test_capture_sets_location(self):
        """Test a device position is attached."""
        provider = DevicePositionProvider(latitude=12.9253, longitude=77.6164)

        location = asyncio.run(self.workflow.capture_location(provider))

        assert location == KORAMANGALA
        assert self.workflow.draft.location == KORAMANGALA

    def test_permission_denied_sets_error(self):
        """Test denied permission is reported on the draft."""
        provider = DevicePositionProvider(error_code=1)

        location = asyncio.run(self.workflow.capture_location(provider))

        assert location is None
        assert self.workflow.draft.location is None
        assert self.workflow.draft.error.startswith("Permission to access location was denied")

    def test_no_provider_is_unsupported(self):
        """Test a client without location support."""
        asyncio.run(self.workflow.capture_location(None))

        assert self.workflow.draft.error == "Geolocation is not supported by your browser."

    def test_camera_source_is_kept(self, jpeg_bytes):
        """Test camera captures are tagged on the draft image."""
        asyncio.run(self.workflow.attach_image(jpeg_bytes, source=CaptureSource.CAMERA))

        assert self.workflow.draft.image.source == CaptureSource.CAMERA


class TestDraftSubmission:
    """Test suite for the draft model."""

    def test_new_draft_defaults(self):
        """Test a fresh draft is empty and editable."""
        draft = DraftSubmission()

        assert draft.state == SubmissionState.EDITING
        assert draft.severity == Severity.MEDIUM
        assert draft.verdict == Verdict.UNKNOWN
        assert draft.in_flight is False
        assert draft.preview is None

    def test_in_flight_states(self):
        """Test which states block edits."""
        draft = DraftSubmission()
        for state in SubmissionState:
            draft.state = state
            expected = state in (
                SubmissionState.VALIDATING,
                SubmissionState.UPLOADING,
                SubmissionState.PERSISTING,
            )
            assert draft.in_flight is expected

    def test_to_dict(self):
        """Test draft serialization."""
        draft = DraftSubmission(description="Hole", location=KORAMANGALA)
        data = draft.to_dict()

        assert data["description"] == "Hole"
        assert data["severity"] == "medium"
        assert data["location"] == {"latitude": 12.9253, "longitude": 77.6164}
        assert data["image"] is None
        assert data["image_uploaded"] is False

"""
RoadWatch - REST API

FastAPI application exposing report submission, moderation
and account endpoints to the web and mobile clients.

Run with: uvicorn roadwatch.api.main:app --reload
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from roadwatch import __version__
from roadwatch.auth.session import CurrentUser, DatabaseIdentityProvider, SessionContext
from roadwatch.auth.tokens import create_access_token, decode_access_token, revoke_access_token
from roadwatch.core.config import settings
from roadwatch.core.constants import SEVERITY_GUIDANCE, Severity
from roadwatch.core.errors import (
    AccountExistsError,
    AuthError,
    GeoError,
    MediaError,
    NotAuthorizedError,
    PersistError,
    ReportNotFound,
    RoadWatchError,
    TransitionError,
    UploadError,
    ValidationError,
)
from roadwatch.core.logging import setup_logging
from roadwatch.core.report import Report
from roadwatch.crowdsource.feed import DEFAULT_FEED_LIMIT, ReportFeed
from roadwatch.crowdsource.moderation import ReportModerationWorkflow, StatusFilter, available_actions
from roadwatch.crowdsource.submission import ReportSubmissionWorkflow
from roadwatch.database.connection import DatabaseConnection, init_db
from roadwatch.database.report_store import ReportStore
from roadwatch.geolocation.location_capture import DevicePositionProvider, IpLocationProvider
from roadwatch.media.capture import CaptureSource
from roadwatch.ml.defect_classifier import DefectClassifier
from roadwatch.rewards.points import PointsLedger
from roadwatch.storage.object_storage import ObjectStorage, create_storage

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="RoadWatch",
    description="Citizen pothole reporting with photo checks, moderation and rewards",
    version=__version__,
    debug=settings.debug,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Pydantic Models
# ============================================================================

class HealthResponse(BaseModel):
    """API health check response."""
    status: str
    version: str
    environment: str
    timestamp: str
    modules: dict


class CredentialsRequest(BaseModel):
    """Email and password for sign-up and sign-in."""
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(BaseModel):
    """Signed-in user."""
    id: str
    email: str
    is_admin: bool


class TokenResponse(BaseModel):
    """Session token."""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class ProfileResponse(BaseModel):
    """Profile with points balance."""
    id: str
    email: str
    is_admin: bool
    points: int
    profile_image: Optional[str]


class SeverityResponse(BaseModel):
    """Severity level with reporter guidance."""
    value: str
    guidance: str


class DraftUpdateRequest(BaseModel):
    """Fields of a draft the reporter can edit."""
    description: Optional[str] = Field(default=None, max_length=2000)
    severity: Optional[Severity] = None


class LocationRequest(BaseModel):
    """Position or error reported by the device location API."""
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    error_code: Optional[int] = Field(default=None, description="W3C GeolocationPositionError code")


class DraftResponse(BaseModel):
    """Draft submission state."""
    draft_id: str
    state: str
    description: str
    severity: str
    image: Optional[dict]
    location: Optional[dict]
    verdict: str
    warning: Optional[str]
    error: Optional[str]
    image_uploaded: bool


class ReportResponse(BaseModel):
    """Persisted report."""
    id: str
    user_id: str
    description: str
    severity: str
    latitude: float
    longitude: float
    image_url: str
    status: str
    votes: int
    comment_count: int
    created_at: str
    updated_at: Optional[str]
    available_actions: List[str]


class ReportListResponse(BaseModel):
    """Filtered report list for moderators."""
    count: int
    filter: str
    error: Optional[str]
    reports: List[ReportResponse]


class FeedItemResponse(BaseModel):
    """Report as listed in the public feed."""
    id: str
    description: str
    severity: str
    status: str
    latitude: float
    longitude: float
    image_url: str
    created_at: str


class FeedResponse(BaseModel):
    """Newest-first reports for signed-in users."""
    count: int
    filter: str
    reports: List[FeedItemResponse]


# ============================================================================
# Services
# ============================================================================

@lru_cache()
def get_database() -> DatabaseConnection:
    return init_db()


@lru_cache()
def get_object_storage() -> ObjectStorage:
    return create_storage()


@lru_cache()
def get_classifier() -> DefectClassifier:
    return DefectClassifier()


def get_report_store(db: DatabaseConnection = Depends(get_database)) -> ReportStore:
    return ReportStore(db)


def get_identity(db: DatabaseConnection = Depends(get_database)) -> DatabaseIdentityProvider:
    return DatabaseIdentityProvider(db)


def get_points_ledger(db: DatabaseConnection = Depends(get_database)) -> PointsLedger:
    return PointsLedger(db)


bearer_scheme = HTTPBearer(auto_error=False)


async def get_session_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: DatabaseIdentityProvider = Depends(get_identity),
) -> SessionContext:
    """Session for the bearer token, empty when none is sent."""
    if credentials is None:
        return SessionContext(identity)

    try:
        claims = decode_access_token(credentials.credentials)
    except AuthError as e:
        raise http_error(e)

    user = await identity.get_user(claims["sub"])
    if user is None:
        raise http_error(AuthError("Account no longer exists"))
    return SessionContext(identity, user)


def require_user(session: SessionContext = Depends(get_session_context)) -> CurrentUser:
    try:
        return session.require_user()
    except AuthError as e:
        raise http_error(e)


# ============================================================================
# Helper Functions
# ============================================================================

ERROR_STATUS_CODES = [
    (ValidationError, 400),
    (AuthError, 401),
    (NotAuthorizedError, 403),
    (ReportNotFound, 404),
    (TransitionError, 409),
    (AccountExistsError, 409),
    (MediaError, 415),
    (GeoError, 422),
    (UploadError, 502),
    (PersistError, 502),
]


def http_error(error: RoadWatchError) -> HTTPException:
    """Map a domain error to an HTTP error with its user-facing message."""
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_cls):
            headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
            return HTTPException(status_code=status_code, detail=error.message, headers=headers)
    return HTTPException(status_code=500, detail=error.message)


def report_response(report: Report) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        user_id=report.user_id,
        description=report.description,
        severity=report.severity.value,
        latitude=report.latitude,
        longitude=report.longitude,
        image_url=report.image_url,
        status=report.status.value,
        votes=report.votes,
        comment_count=len(report.comments),
        created_at=report.created_at.isoformat(),
        updated_at=report.updated_at.isoformat() if report.updated_at else None,
        available_actions=[s.value for s in available_actions(report)],
    )


def token_response(user: CurrentUser) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id),
        user=UserResponse(id=user.id, email=user.email, is_admin=user.is_admin),
    )


@dataclass
class OpenDraft:
    """Report form held between requests."""
    workflow: ReportSubmissionWorkflow
    owner_id: str
    touched_at: datetime


# One workflow per open report form, keyed by draft id
_drafts: Dict[str, OpenDraft] = {}


def close_draft(draft_id: str) -> None:
    entry = _drafts.pop(draft_id, None)
    if entry is not None:
        entry.workflow.discard()


def prune_drafts(now: Optional[datetime] = None) -> int:
    """
    Close drafts idle longer than the configured TTL.

    Drafts with a submission in flight are left alone.

    Returns:
        Number of drafts closed
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=settings.draft_ttl_minutes)
    expired = [
        draft_id for draft_id, entry in _drafts.items()
        if entry.touched_at < cutoff and not entry.workflow.draft.in_flight
    ]
    for draft_id in expired:
        close_draft(draft_id)
    if expired:
        logger.info(f"Closed {len(expired)} idle drafts")
    return len(expired)


def get_draft(draft_id: str, user: CurrentUser) -> ReportSubmissionWorkflow:
    prune_drafts()
    entry = _drafts.get(draft_id)
    if entry is None or entry.owner_id != user.id:
        raise HTTPException(status_code=404, detail="Draft not found")
    entry.touched_at = datetime.now(timezone.utc)
    return entry.workflow


def draft_response(draft_id: str, workflow: ReportSubmissionWorkflow) -> DraftResponse:
    return DraftResponse(draft_id=draft_id, **workflow.draft.to_dict())


# ============================================================================
# System Routes
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(
    db: DatabaseConnection = Depends(get_database),
    classifier: DefectClassifier = Depends(get_classifier),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Check API health status and module availability."""
    modules = {
        "database": await asyncio.to_thread(db.check_connection),
        "classifier": await asyncio.to_thread(lambda: classifier.is_ready),
        "storage": storage.__class__.__name__,
    }

    return HealthResponse(
        status="healthy" if modules["database"] else "degraded",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        modules=modules,
    )


@app.get("/api/v1/severities", response_model=List[SeverityResponse], tags=["System"])
async def list_severities():
    """Severity levels with size guidance for reporters."""
    return [
        SeverityResponse(value=level.value, guidance=SEVERITY_GUIDANCE[level])
        for level in Severity
    ]


# ============================================================================
# Auth Routes
# ============================================================================

@app.post("/api/v1/auth/signup", response_model=TokenResponse, status_code=201, tags=["Auth"])
async def sign_up(
    request: CredentialsRequest,
    identity: DatabaseIdentityProvider = Depends(get_identity),
):
    """Create an account and start a session."""
    session = SessionContext(identity)
    try:
        user = await session.sign_up(request.email, request.password)
    except RoadWatchError as e:
        raise http_error(e)
    return token_response(user)


@app.post("/api/v1/auth/signin", response_model=TokenResponse, tags=["Auth"])
async def sign_in(
    request: CredentialsRequest,
    identity: DatabaseIdentityProvider = Depends(get_identity),
):
    """Start a session."""
    session = SessionContext(identity)
    try:
        user = await session.sign_in(request.email, request.password)
    except RoadWatchError as e:
        raise http_error(e)
    return token_response(user)


@app.post("/api/v1/auth/signout", status_code=204, tags=["Auth"])
async def sign_out(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: SessionContext = Depends(get_session_context),
):
    """End the session and drop its open drafts."""
    user = session.current_user
    if user is None:
        raise http_error(AuthError("Please sign in first"))

    for draft_id, entry in list(_drafts.items()):
        if entry.owner_id == user.id:
            close_draft(draft_id)

    revoke_access_token(credentials.credentials)
    await session.sign_out()
    return Response(status_code=204)


@app.get("/api/v1/me", response_model=ProfileResponse, tags=["Auth"])
async def get_profile(
    user: CurrentUser = Depends(require_user),
    ledger: PointsLedger = Depends(get_points_ledger),
):
    """Profile and points balance of the signed-in user."""
    try:
        summary = await ledger.get_summary(user.id)
    except PersistError as e:
        raise http_error(e)
    if summary is None:
        raise HTTPException(status_code=404, detail="Profile not found")

    return ProfileResponse(
        id=user.id,
        email=user.email,
        is_admin=user.is_admin,
        points=summary.points,
        profile_image=summary.profile_image,
    )


@app.get("/api/v1/me/redemptions", tags=["Auth"])
async def get_redemptions(
    user: CurrentUser = Depends(require_user),
    ledger: PointsLedger = Depends(get_points_ledger),
):
    """Points redemptions of the signed-in user."""
    try:
        redemptions = await ledger.list_redemptions(user.id)
    except PersistError as e:
        raise http_error(e)
    return {"count": len(redemptions), "redemptions": redemptions}


# ============================================================================
# Draft Routes
# ============================================================================

@app.post("/api/v1/drafts", response_model=DraftResponse, status_code=201, tags=["Reports"])
async def create_draft(
    session: SessionContext = Depends(get_session_context),
    store: ReportStore = Depends(get_report_store),
    storage: ObjectStorage = Depends(get_object_storage),
    classifier: DefectClassifier = Depends(get_classifier),
):
    """Open a report form."""
    try:
        user = session.require_user()
    except AuthError as e:
        raise http_error(e)

    prune_drafts()
    own = sorted(
        (entry.touched_at, draft_id)
        for draft_id, entry in _drafts.items()
        if entry.owner_id == user.id and not entry.workflow.draft.in_flight
    )
    open_count = sum(1 for entry in _drafts.values() if entry.owner_id == user.id)
    # Oldest idle forms make room for the new one
    while open_count >= settings.max_drafts_per_user and own:
        _, oldest_id = own.pop(0)
        close_draft(oldest_id)
        open_count -= 1
    if open_count >= settings.max_drafts_per_user:
        raise HTTPException(status_code=429, detail="Too many report forms in progress")

    draft_id = uuid.uuid4().hex
    workflow = ReportSubmissionWorkflow(
        session=session,
        storage=storage,
        store=store,
        classifier=classifier,
    )
    _drafts[draft_id] = OpenDraft(
        workflow=workflow,
        owner_id=user.id,
        touched_at=datetime.now(timezone.utc),
    )
    return draft_response(draft_id, workflow)


@app.get("/api/v1/drafts/{draft_id}", response_model=DraftResponse, tags=["Reports"])
async def read_draft(draft_id: str, user: CurrentUser = Depends(require_user)):
    """Current state of a report form."""
    return draft_response(draft_id, get_draft(draft_id, user))


@app.patch("/api/v1/drafts/{draft_id}", response_model=DraftResponse, tags=["Reports"])
async def update_draft(
    draft_id: str,
    request: DraftUpdateRequest,
    user: CurrentUser = Depends(require_user),
):
    """Edit description or severity."""
    workflow = get_draft(draft_id, user)

    if request.description is not None and not workflow.set_description(request.description):
        raise HTTPException(status_code=409, detail="Submission in progress")
    if request.severity is not None and not workflow.set_severity(request.severity):
        raise HTTPException(status_code=409, detail="Submission in progress")

    return draft_response(draft_id, workflow)


@app.post("/api/v1/drafts/{draft_id}/image", response_model=DraftResponse, tags=["Reports"])
async def attach_draft_image(
    draft_id: str,
    photo: UploadFile = File(...),
    source: CaptureSource = Form(CaptureSource.FILE_PICKER),
    user: CurrentUser = Depends(require_user),
):
    """
    Attach a photo from the file picker or camera.

    The photo is checked by the defect classifier in the background;
    a likely non-pothole photo only adds a warning to the draft.
    """
    workflow = get_draft(draft_id, user)
    data = await photo.read()

    attached = await workflow.attach_image(
        data,
        filename=photo.filename or "photo.jpg",
        content_type=photo.content_type,
        source=source,
    )
    if not attached:
        if workflow.draft.in_flight:
            raise HTTPException(status_code=409, detail="Submission in progress")
        raise HTTPException(status_code=415, detail=workflow.draft.error)

    return draft_response(draft_id, workflow)


@app.post("/api/v1/drafts/{draft_id}/location", response_model=DraftResponse, tags=["Reports"])
async def capture_draft_location(
    draft_id: str,
    http_request: Request,
    request: Optional[LocationRequest] = None,
    user: CurrentUser = Depends(require_user),
):
    """
    Attach the reporter's position.

    Send the coordinates (or error code) from the device location API.
    With no body, the position is estimated from the client address.
    """
    workflow = get_draft(draft_id, user)

    if request is not None and (request.latitude is not None or request.error_code is not None):
        provider = DevicePositionProvider(
            latitude=request.latitude,
            longitude=request.longitude,
            error_code=request.error_code,
        )
    else:
        client_ip = http_request.client.host if http_request.client else None
        provider = IpLocationProvider(ip_address=client_ip)

    location = await workflow.capture_location(provider)
    if location is None:
        if workflow.draft.in_flight:
            raise HTTPException(status_code=409, detail="Submission in progress")
        if workflow.draft.error is None:
            raise HTTPException(status_code=409, detail="Draft changed while locating")
        raise HTTPException(status_code=422, detail=workflow.draft.error)

    return draft_response(draft_id, workflow)


@app.post("/api/v1/drafts/{draft_id}/submit", response_model=ReportResponse, status_code=201, tags=["Reports"])
async def submit_draft(draft_id: str, user: CurrentUser = Depends(require_user)):
    """
    Submit the report.

    On failure the draft keeps its fields so the client can retry.
    """
    workflow = get_draft(draft_id, user)
    result = await workflow.submit()

    if result.ignored:
        raise HTTPException(status_code=409, detail="Submission already in progress")
    if result.error is not None:
        raise http_error(result.error)

    _drafts.pop(draft_id, None)
    return report_response(result.report)


@app.delete("/api/v1/drafts/{draft_id}", status_code=204, tags=["Reports"])
async def discard_draft(draft_id: str, user: CurrentUser = Depends(require_user)):
    """Close a report form without submitting."""
    get_draft(draft_id, user)
    close_draft(draft_id)
    return Response(status_code=204)


# ============================================================================
# Feed Routes
# ============================================================================

def get_feed(
    session: SessionContext = Depends(get_session_context),
    store: ReportStore = Depends(get_report_store),
) -> ReportFeed:
    try:
        return ReportFeed(session, store)
    except AuthError as e:
        raise http_error(e)


@app.get("/api/v1/feed", response_model=FeedResponse, tags=["Reports"])
async def list_feed(
    status: StatusFilter = Query(StatusFilter.ALL, description="all, reported, in-progress, resolved"),
    limit: int = Query(DEFAULT_FEED_LIMIT, ge=1, le=500),
    feed: ReportFeed = Depends(get_feed),
):
    """Reported potholes, newest first."""
    try:
        items = await feed.recent(status, limit=limit)
    except PersistError as e:
        raise http_error(e)

    return FeedResponse(
        count=len(items),
        filter=status.value,
        reports=[FeedItemResponse(**item.to_dict()) for item in items],
    )


# ============================================================================
# Moderation Routes
# ============================================================================

def get_moderation(
    session: SessionContext = Depends(get_session_context),
    store: ReportStore = Depends(get_report_store),
) -> ReportModerationWorkflow:
    try:
        return ReportModerationWorkflow(session, store)
    except (AuthError, NotAuthorizedError) as e:
        raise http_error(e)


@app.get("/api/v1/reports", response_model=ReportListResponse, tags=["Moderation"])
async def list_reports(
    status: StatusFilter = Query(StatusFilter.ALL, description="all, reported, in-progress, resolved"),
    moderation: ReportModerationWorkflow = Depends(get_moderation),
):
    """List reports, newest first, filtered by status."""
    await moderation.refresh()
    reports = moderation.list_reports(status)

    return ReportListResponse(
        count=len(reports),
        filter=status.value,
        error=moderation.error,
        reports=[report_response(r) for r in reports],
    )


@app.put("/api/v1/reports/{report_id}/status", response_model=ReportResponse, tags=["Moderation"])
async def update_report_status(
    report_id: str,
    status: str = Query(..., description="New status: in-progress or resolved"),
    moderation: ReportModerationWorkflow = Depends(get_moderation),
):
    """Move a report to its next status."""
    try:
        report = await moderation.advance(report_id, status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    except (TransitionError, PersistError) as e:
        raise http_error(e)

    return report_response(report)


# ============================================================================
# Main
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)

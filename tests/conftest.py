"""
Pytest configuration and fixtures
"""
import pytest
import sys
from datetime import datetime
from pathlib import Path

import cv2
import numpy as np

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from roadwatch.auth.session import CurrentUser, DatabaseIdentityProvider, SessionContext
from roadwatch.core.constants import ReportStatus, Severity
from roadwatch.database.connection import DatabaseConnection
from roadwatch.database.models import PotholeReport, Profile
from roadwatch.database.report_store import ReportStore
from roadwatch.storage.object_storage import LocalObjectStorage

PUBLIC_BASE_URL = "https://roads.example.org"


class FakeModel:
    """Stand-in for a Keras model with a fixed score."""

    def __init__(self, score=0.9, error=None):
        self.score = score
        self.error = error
        self.batches = []

    def predict(self, batch, verbose=0):
        self.batches.append(batch)
        if self.error is not None:
            raise self.error
        return np.array([[self.score]], dtype=np.float32)


def _road_image(height=120, width=160):
    image = np.full((height, width, 3), 95, dtype=np.uint8)
    cv2.circle(image, (width // 2, height // 2), min(height, width) // 4, (30, 30, 30), -1)
    return image


@pytest.fixture
def road_image():
    """Decoded BGR road photo."""
    return _road_image()


@pytest.fixture
def jpeg_bytes():
    """JPEG-encoded road photo."""
    ok, buffer = cv2.imencode(".jpg", _road_image())
    assert ok
    return buffer.tobytes()


@pytest.fixture
def png_bytes():
    """PNG-encoded road photo."""
    ok, buffer = cv2.imencode(".png", _road_image(64, 64))
    assert ok
    return buffer.tobytes()


@pytest.fixture
def db():
    """In-memory database with all tables."""
    connection = DatabaseConnection("sqlite://")
    connection.create_tables()
    yield connection
    connection.drop_tables()
    connection.close()


@pytest.fixture
def store(db):
    return ReportStore(db)


@pytest.fixture
def storage(tmp_path):
    """Filesystem bucket under a temporary directory."""
    return LocalObjectStorage(
        root_dir=str(tmp_path / "objects"),
        public_base_url=PUBLIC_BASE_URL,
        bucket="pothole-images",
    )


@pytest.fixture
def add_profile(db):
    """Create a profile row and return its CurrentUser."""
    def _add(email, is_admin=False, points=0, password_hash="unused"):
        with db.get_session() as session:
            profile = Profile(
                email=email,
                password_hash=password_hash,
                is_admin=is_admin,
                points=points,
            )
            session.add(profile)
            session.flush()
            return CurrentUser(id=profile.id, email=profile.email, is_admin=profile.is_admin)
    return _add


@pytest.fixture
def citizen(add_profile):
    return add_profile("citizen@example.org", points=120)


@pytest.fixture
def admin(add_profile):
    return add_profile("staff@example.org", is_admin=True)


@pytest.fixture
def citizen_session(db, citizen):
    return SessionContext(DatabaseIdentityProvider(db), citizen)


@pytest.fixture
def admin_session(db, admin):
    return SessionContext(DatabaseIdentityProvider(db), admin)


@pytest.fixture
def seed_report(db, citizen):
    """Insert a report row directly and return its id."""
    def _seed(status=ReportStatus.REPORTED, created_at=None, description="Pothole near bus stop"):
        with db.get_session() as session:
            row = PotholeReport(
                user_id=citizen.id,
                description=description,
                severity=Severity.MEDIUM,
                latitude=12.9353,
                longitude=77.5354,
                image_url=f"{PUBLIC_BASE_URL}/storage/v1/object/public/pothole-images/seed.jpg",
                status=ReportStatus(status),
                created_at=created_at or datetime(2024, 5, 1, 9, 0),
            )
            session.add(row)
            session.flush()
            return row.id
    return _seed

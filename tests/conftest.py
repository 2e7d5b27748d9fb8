"""Test fixtures for the RangerWatch API tests."""
import os
import sys
import tempfile
import uuid
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

# Add parent dir to path so imports work
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

_TMP_DIR = tempfile.mkdtemp(prefix="rangerwatch-test-")
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite:///{os.path.join(_TMP_DIR, 'rangerwatch_test.db')}",
)
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

from config import settings
from database import Base, get_db
from models import Checkin, Sighting

T0 = datetime(2026, 5, 1, 12, 0, 0)
ADMIN_USER = "test-admin"
ADMIN_PASS = "testpass"


class FrozenClock:
    """Stand-in for the request clock; tests move time explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def db_engine():
    """Create a test database engine."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(TEST_DATABASE_URL, pool_pre_ping=True)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="session")
def TestingSessionLocal(db_engine):
    """Shared session factory for the test database."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(autouse=True)
def clean_tables(db_engine):
    """Empty all tables between tests for isolation."""
    yield
    with db_engine.connect() as conn:
        conn.execute(text("DELETE FROM checkins"))
        conn.execute(text("DELETE FROM sightings"))
        conn.execute(text("DELETE FROM geo_cells"))
        conn.execute(text("DELETE FROM counters"))
        conn.commit()


@pytest.fixture
def db_session(TestingSessionLocal):
    """Create a test database session."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def mock_minio():
    """Mock MinIO client that records calls."""
    mock_client = MagicMock()
    mock_client.put_object = MagicMock(return_value=None)
    mock_client.bucket_exists = MagicMock(return_value=True)
    return mock_client


@pytest.fixture
def app(TestingSessionLocal, mock_minio, clock):
    """Create a FastAPI test app with overridden dependencies."""

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    with patch("main.get_minio_client", return_value=mock_minio):
        from main import app as fastapi_app, get_now

        fastapi_app.dependency_overrides[get_db] = override_get_db
        fastapi_app.dependency_overrides[get_now] = clock
        yield fastapi_app
        fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Create a test HTTP client."""
    return TestClient(app)


@pytest.fixture
def admin_credentials():
    with patch.object(settings, "ADMIN_USERNAME", ADMIN_USER), \
         patch.object(settings, "ADMIN_PASSWORD", ADMIN_PASS):
        yield (ADMIN_USER, ADMIN_PASS)


@pytest.fixture
def admin_client(app, admin_credentials):
    """TestClient sending valid admin Basic credentials."""
    c = TestClient(app)
    c.auth = admin_credentials
    return c


def make_sighting_payload(**overrides):
    payload = {
        "tag": "Sighting",
        "description": "Two rangers by the north gate",
        "lat": 40.7128,
        "lng": -74.0060,
        "device_uuid": "device-aaa",
        "anon_user_number": 7,
    }
    payload.update(overrides)
    return payload


def insert_sighting(db_session, created_at, lat=40.7128, lng=-74.0060, device_uuid="device-aaa",
                    tag="Sighting", is_deleted=False):
    """Insert a sighting row directly, bypassing the submission rules."""
    s = Sighting(
        id=uuid.uuid4(),
        created_at=created_at,
        tag=tag,
        lat=lat,
        lng=lng,
        device_uuid=device_uuid,
        anon_user_number=1,
        is_deleted=is_deleted,
    )
    db_session.add(s)
    db_session.commit()
    return s.id


def insert_checkin(db_session, sighting_id, created_at, device_uuid="device-ccc"):
    c = Checkin(
        id=uuid.uuid4(),
        created_at=created_at,
        sighting_id=sighting_id,
        device_uuid=device_uuid,
        anon_user_number=2,
    )
    db_session.add(c)
    db_session.commit()
    return c.id

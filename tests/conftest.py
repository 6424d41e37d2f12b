"""Shared pytest fixtures for unit and integration tests."""

import os
import uuid
from datetime import datetime, timedelta
from typing import Optional

import pytest
from dotenv import load_dotenv

# Load .env so DATABASE_URL is available for the requires_db check
load_dotenv()

from httpx import ASGITransport, AsyncClient

from admissions.main import app
from admissions.config import settings
from admissions.models.enums import StudentStatus
from admissions.schemas.student import StudentResponse

# Skip integration tests if DATABASE_URL is not set
requires_db = pytest.mark.skipif(
    not os.getenv("DATABASE_URL"),
    reason="DATABASE_URL must be set",
)

BASE_TIME = datetime(2025, 3, 1, 8, 0, 0)


def _get_api_base() -> str:
    """API base URL. With TEST_USE_LIVE_SERVER=true, hit a running server instead of the ASGI app."""
    if os.getenv("TEST_USE_LIVE_SERVER", "").lower() == "true":
        base = os.getenv("LIVE_SERVER_URL", "http://localhost:8000")
        return f"{base}{settings.API_V1_PREFIX}"
    return f"http://test{settings.API_V1_PREFIX}"


@pytest.fixture
def api_base() -> str:
    """Base URL for API requests."""
    return _get_api_base()


@pytest.fixture
async def async_client(api_base: str):
    """Async HTTP client against the app (or a live server in CI)."""
    use_live = os.getenv("TEST_USE_LIVE_SERVER", "").lower() == "true"
    if use_live:
        client = AsyncClient(base_url=api_base, timeout=30.0)
    else:
        transport = ASGITransport(app=app)
        client = AsyncClient(transport=transport, base_url=api_base, timeout=30.0)
    yield client
    await client.aclose()


@pytest.fixture
def unique_suffix() -> str:
    """Unique suffix for test data to avoid collisions."""
    return str(uuid.uuid4())[:8]


def make_student(
    name: str = "Jane Doe",
    class_name: str = "Senior 1",
    stream: str = "A",
    access_number: Optional[str] = None,
    admission_id: Optional[str] = None,
    status: StudentStatus = StudentStatus.ACTIVE,
    parent_name: Optional[str] = "John Doe",
    created_at: Optional[datetime] = None,
    minutes: int = 0,
) -> StudentResponse:
    """Roster record as the API returns it."""
    created = created_at or BASE_TIME + timedelta(minutes=minutes)
    return StudentResponse(
        id=uuid.uuid4(),
        name=name,
        class_name=class_name,
        stream=stream,
        parent_name=parent_name,
        status=status,
        access_number=access_number,
        admission_id=admission_id,
        created_at=created,
        updated_at=created,
    )


@pytest.fixture
def student_factory():
    """Build roster records; created_at advances one minute per call unless given."""
    counter = {"n": 0}

    def _make(**kwargs) -> StudentResponse:
        counter["n"] += 1
        kwargs.setdefault("minutes", counter["n"])
        return make_student(**kwargs)

    return _make

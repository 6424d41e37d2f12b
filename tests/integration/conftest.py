"""Fixtures for DB-backed integration tests."""

import pytest

from admissions.database import engine, init_db


@pytest.fixture(autouse=True)
async def schema():
    """Ensure tables exist; pooled connections are dropped so each test's event loop starts clean."""
    await init_db()
    yield
    await engine.dispose()

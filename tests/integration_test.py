import uuid

import httpx
import pytest

from admissions.client.live_check import DuplicateCheckSession
from admissions.client.registry import DuplicateStudentError, StudentRegistry
from admissions.config import settings
from admissions.database import engine, init_db
from admissions.main import app
from admissions.models.enums import DuplicateCheckState, StudentStatus
from admissions.schemas.student import StudentCreate

from tests.conftest import requires_db

pytestmark = requires_db

BASE_URL = f"http://test{settings.API_V1_PREFIX}"


@pytest.mark.asyncio
async def test_full_admission_flow():
    """
    Drive the registry client against the real app:
    1. Admit two students into one stream
    2. Flag the lower-numbered one and see its number offered again
    3. Block an exact duplicate both live and on submission
    """
    run_id = str(uuid.uuid4())[:8]
    await init_db()

    registry = StudentRegistry.connect(base_url=BASE_URL, transport=httpx.ASGITransport(app=app))
    try:
        await registry.refresh()

        first = await registry.admit_student(
            StudentCreate(name=f"Ann {run_id}", class_name="Senior 5", stream="K", parent_name="Rose")
        )
        second = await registry.admit_student(
            StudentCreate(name=f"Ben {run_id}", class_name="Senior 5", stream="K")
        )
        assert first.access_number.startswith("EK")
        assert first.access_number != second.access_number
        assert first.admission_id != second.admission_id

        lower, higher = sorted((first, second), key=lambda s: int(s.access_number[2:]))
        await registry.flag_student(lower.id, StudentStatus.TRANSFERRED, "Changed school")
        assert lower.access_number in registry.get_available_access_numbers("Senior 5", "K")
        assert registry.generate_access_number("Senior 5", "K") == registry.get_available_access_numbers("Senior 5", "K")[0]

        candidate = {"name": f"ann {run_id}", "class_name": "Senior 5", "parent_name": "ROSE"}
        if lower.id == first.id:
            # Ann is no longer active, so she is not a duplicate any more
            assert not (await registry.validate_against_duplicates(candidate, strict=True)).is_duplicate
        else:
            session = DuplicateCheckSession.for_registry(registry, debounce=0)
            session.update(candidate)
            await session.wait()
            assert session.state == DuplicateCheckState.WARNED_DUPLICATE
            await session.check_for_submission(candidate)
            assert not session.can_submit

            with pytest.raises(DuplicateStudentError):
                await registry.admit_student(
                    StudentCreate(name=f"ann {run_id}", class_name="Senior 5", stream="K", parent_name="ROSE")
                )
    finally:
        await registry.aclose()
        await engine.dispose()

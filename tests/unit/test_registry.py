"""Unit tests for the StudentRegistry client against a fake backend."""

import json
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

import httpx
import pytest

from admissions.client.registry import (
    AllocationConflictError,
    DuplicateStudentError,
    StudentNotFoundError,
    StudentRegistry,
)
from admissions.models.enums import DuplicateSeverity, StudentStatus
from admissions.schemas.student import StudentCreate

API = "/api/v1"


def _record(body: dict, status: str = "active") -> dict:
    now = datetime(2025, 3, 1, 8, 0, 0).isoformat()
    return {
        "id": str(uuid4()),
        "name": body["name"],
        "class_name": body["class_name"],
        "stream": body.get("stream", ""),
        "parent_name": body.get("parent_name"),
        "status": status,
        "access_number": body.get("access_number"),
        "admission_id": body.get("admission_id"),
        "flag_comment": None,
        "is_readmission": body.get("is_readmission", False),
        "created_at": now,
        "updated_at": now,
    }


class FakeBackend:
    """Minimal stand-in for the students API."""

    def __init__(self):
        self.students: List[dict] = []
        self.pool: List[dict] = []
        self.posted: List[dict] = []
        self.conflicts = 0
        self.duplicate_of: Optional[dict] = None
        self.down = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path.removeprefix(API)
        method = request.method

        if method == "GET" and path == "/students":
            return httpx.Response(200, json={
                "success": True,
                "data": self.students,
                "meta": {"page": 1, "page_size": 500, "total": len(self.students), "total_pages": 1},
            })
        if method == "GET" and path == "/students/dropped-access-numbers":
            return httpx.Response(200, json={"success": True, "data": self.pool})
        if method == "POST" and path == "/students/dropped-access-numbers":
            entry = dict(json.loads(request.content), id=str(uuid4()), dropped_at="2025-03-01T08:00:00")
            self.pool.append(entry)
            return httpx.Response(200, json={"success": True, "data": entry})
        if method == "DELETE" and path.startswith("/students/dropped-access-numbers/"):
            number = path.rsplit("/", 1)[1]
            before = len(self.pool)
            self.pool = [e for e in self.pool if e["access_number"] != number]
            removed = len(self.pool) < before
            return httpx.Response(200, json={"success": True, "data": {"access_number": number, "removed": removed}})
        if method == "POST" and path == "/students":
            return self._create(json.loads(request.content))
        if method == "PATCH" and path.endswith("/flag"):
            student_id = path.split("/")[2]
            for student in self.students:
                if student["id"] == student_id:
                    student["status"] = json.loads(request.content)["status"]
                    return httpx.Response(200, json={"success": True, "data": student})
            return httpx.Response(404, json={"detail": "Student not found"})
        return httpx.Response(404, json={"detail": "Not Found"})

    def _create(self, body: dict) -> httpx.Response:
        self.posted.append(body)
        if self.duplicate_of is not None:
            return httpx.Response(400, json={"detail": {
                "code": "DUPLICATE_STUDENT",
                "message": "A student with this name already exists",
                "existing_students": [self.duplicate_of],
            }})
        if self.conflicts:
            self.conflicts -= 1
            # another operator got there first
            self.students.append(_record(dict(body, name="Concurrent Admission")))
            return httpx.Response(409, json={"detail": {
                "code": "ACCESS_NUMBER_CONFLICT",
                "message": f"Access number {body['access_number']} is already in use",
            }})
        student = _record(body)
        self.students.append(student)
        return httpx.Response(200, json={"success": True, "data": student})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def registry(backend):
    client = StudentRegistry.connect(
        base_url=f"http://test{API}", transport=httpx.MockTransport(backend.handler)
    )
    yield client
    await client.aclose()


@pytest.mark.asyncio
async def test_refresh_loads_roster_and_pool(registry, backend):
    backend.students.append(_record({"name": "A", "class_name": "Senior 1", "stream": "A", "access_number": "AA02"}))
    backend.pool.append({
        "id": str(uuid4()), "access_number": "AA01", "class_name": "Senior 1", "stream": "A",
        "admission_id": "A25A01", "reason": "Student deleted", "dropped_at": "2025-03-01T08:00:00",
    })

    await registry.refresh()

    assert [s.access_number for s in registry.students] == ["AA02"]
    assert registry.dropped_access_numbers == ["AA01"]
    assert registry.generate_access_number("Senior 1", "A") == "AA01"
    assert registry.get_available_access_numbers("Senior 1", "A") == ["AA01"]
    assert registry.get_admission_number_for_dropped_access("AA01") == "A25A01"
    assert registry.find_by_access_number("AA02").name == "A"


@pytest.mark.asyncio
async def test_admit_proposes_local_number_and_refreshes(registry, backend):
    await registry.refresh()

    student = await registry.admit_student(StudentCreate(name="Ann", class_name="Senior 1", stream="A"))

    assert backend.posted[0]["access_number"] == "AA01"
    assert student.access_number == "AA01"
    assert [s.id for s in registry.students] == [student.id]


@pytest.mark.asyncio
async def test_admit_retries_once_after_conflict(registry, backend):
    await registry.refresh()
    backend.conflicts = 1

    student = await registry.admit_student(StudentCreate(name="Ann", class_name="Senior 1", stream="A"))

    assert [p["access_number"] for p in backend.posted] == ["AA01", "AA02"]
    assert student.access_number == "AA02"


@pytest.mark.asyncio
async def test_admit_gives_up_after_second_conflict(registry, backend):
    await registry.refresh()
    backend.conflicts = 2

    with pytest.raises(AllocationConflictError):
        await registry.admit_student(StudentCreate(name="Ann", class_name="Senior 1", stream="A"))

    assert len(backend.posted) == 2
    # snapshot reflects what the backend holds now
    assert {s.access_number for s in registry.students} == {"AA01", "AA02"}


@pytest.mark.asyncio
async def test_explicit_number_is_not_replaced(registry, backend):
    backend.conflicts = 1

    with pytest.raises(AllocationConflictError):
        await registry.admit_student(
            StudentCreate(name="Ann", class_name="Senior 1", stream="A", access_number="AA05")
        )

    assert [p["access_number"] for p in backend.posted] == ["AA05"]


@pytest.mark.asyncio
async def test_duplicate_rejection_carries_existing_records(registry, backend):
    existing = _record({"name": "John Okello", "class_name": "Senior 2", "stream": "A", "access_number": "BA01"})
    backend.duplicate_of = existing

    with pytest.raises(DuplicateStudentError) as exc_info:
        await registry.admit_student(StudentCreate(name="John Okello", class_name="Senior 2", stream="A"))

    assert [s.access_number for s in exc_info.value.existing_students] == ["BA01"]
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_flag_unknown_student(registry):
    with pytest.raises(StudentNotFoundError):
        await registry.flag_student(uuid4(), StudentStatus.LEFT)


@pytest.mark.asyncio
async def test_pool_mutations_refetch_pool(registry, backend):
    await registry.add_dropped_access_number("AA03", class_name="Senior 1", stream="A", reason="manual")
    assert registry.dropped_access_numbers == ["AA03"]

    removed = await registry.remove_dropped_access_number("AA03")
    assert removed is True
    assert registry.dropped_access_numbers == []


@pytest.mark.asyncio
async def test_validation_fails_open_when_backend_down(registry, backend):
    backend.down = True

    result = await registry.validate_against_duplicates(
        {"name": "Ann", "class_name": "Senior 1"}, strict=True, refresh=True
    )

    assert not result.is_duplicate
    assert result.severity == DuplicateSeverity.NONE


@pytest.mark.asyncio
async def test_local_duplicate_detection(registry, backend):
    backend.students.extend([
        _record({"name": "Ann Achieng", "class_name": "Senior 1", "parent_name": "Rose"}),
        _record({"name": "ann achieng", "class_name": "Senior 1", "parent_name": "rose"}),
    ])
    await registry.refresh()

    groups = registry.detect_duplicates()
    result = await registry.validate_against_duplicates(
        {"name": "Ann Achieng", "class_name": "Senior 1", "parent_name": "Rose"}, strict=True
    )

    assert len(groups) == 1
    assert len(groups[0].students) == 2
    assert result.blocks_submission

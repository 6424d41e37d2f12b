"""
Student registry client.

StudentRegistry holds a snapshot of the roster and the dropped access
number pool fetched from the backend, computes advisory identifiers from
it, and pushes mutations to the backend. The backend stays authoritative:
every mutation is followed by a refresh so the snapshot never drifts, and
a proposed access number that the backend rejects with 409 triggers one
refresh-and-retry.
"""

import asyncio
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

import httpx

from admissions.config import settings
from admissions.core.logging import get_logger
from admissions.models.enums import StudentStatus
from admissions.schemas.student import (
    DroppedAccessNumberCreate,
    DroppedAccessNumberResponse,
    StudentBase,
    StudentCreate,
    StudentDeleted,
    StudentResponse,
    StudentUpdate,
)
from admissions.services import duplicates, numbering

logger = get_logger(__name__)

PAGE_SIZE = 500


class RegistryError(Exception):
    """Backend call failed or returned an error status"""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class AllocationConflictError(RegistryError):
    """Access number still taken after a refresh and retry"""


class DuplicateStudentError(RegistryError):
    def __init__(self, message: str, existing_students: List[StudentResponse], detail: Any = None):
        super().__init__(message, status_code=400, detail=detail)
        self.existing_students = existing_students


class StudentNotFoundError(RegistryError):
    pass


def _error_message(detail: Any, default: str) -> str:
    if isinstance(detail, dict):
        return detail.get("message") or default
    if isinstance(detail, str):
        return detail
    return default


class StudentRegistry:
    """Shared roster state with backend-authoritative mutations"""

    def __init__(self, http: httpx.AsyncClient):
        self._http = http
        self.students: List[StudentResponse] = []
        self.dropped_records: List[DroppedAccessNumberResponse] = []

    @classmethod
    def connect(
        cls,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "StudentRegistry":
        """Registry talking to the configured backend (BACKEND_URL)."""
        http = httpx.AsyncClient(
            base_url=base_url or settings.BACKEND_URL,
            timeout=timeout or settings.BACKEND_TIMEOUT_SECONDS,
            transport=transport,
        )
        return cls(http)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "StudentRegistry":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def dropped_access_numbers(self) -> List[str]:
        return [entry.access_number for entry in self.dropped_records]

    # Transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RegistryError(f"Backend unreachable: {exc}") from exc

        if response.status_code < 400:
            return response.json()

        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = response.text

        code = detail.get("code") if isinstance(detail, dict) else None
        if response.status_code == 404:
            raise StudentNotFoundError(_error_message(detail, "Student not found"), 404, detail)
        if response.status_code == 409:
            raise AllocationConflictError(_error_message(detail, "Access number conflict"), 409, detail)
        if response.status_code == 400 and code == "DUPLICATE_STUDENT":
            existing = [StudentResponse.model_validate(s) for s in detail.get("existing_students", [])]
            raise DuplicateStudentError(_error_message(detail, "Duplicate student"), existing, detail)
        raise RegistryError(
            _error_message(detail, f"Backend returned {response.status_code}"),
            response.status_code,
            detail,
        )

    # Snapshot

    async def fetch_students(self) -> List[StudentResponse]:
        students: List[StudentResponse] = []
        page = 1
        while True:
            body = await self._request("GET", "/students", params={"page": page, "limit": PAGE_SIZE})
            students.extend(StudentResponse.model_validate(s) for s in body["data"])
            if page >= body["meta"]["total_pages"]:
                break
            page += 1
        self.students = students
        return students

    async def fetch_dropped_access_numbers(self) -> List[DroppedAccessNumberResponse]:
        body = await self._request("GET", "/students/dropped-access-numbers")
        self.dropped_records = [DroppedAccessNumberResponse.model_validate(e) for e in body["data"]]
        return self.dropped_records

    async def refresh(self) -> None:
        """Replace the snapshot with the backend's current roster and pool."""
        await asyncio.gather(self.fetch_students(), self.fetch_dropped_access_numbers())
        logger.debug(
            "Registry refreshed",
            extra={"students": len(self.students), "dropped": len(self.dropped_records)},
        )

    # Allocation (advisory)

    def generate_access_number(self, class_name: str, stream: str) -> str:
        return numbering.generate_access_number(
            self.students, self.dropped_access_numbers, class_name, stream
        )

    def generate_admission_id(
        self,
        class_name: str,
        on: Optional[Union[date, datetime]] = None,
    ) -> str:
        return numbering.generate_admission_id(self.students, class_name, on)

    def get_available_access_numbers(self, class_name: str, stream: str) -> List[str]:
        return numbering.get_available_access_numbers(
            self.students, self.dropped_access_numbers, class_name, stream
        )

    def get_admission_number_for_dropped_access(self, access_number: str) -> Optional[str]:
        """Admission id recorded with a dropped number, falling back to its last holder."""
        for entry in self.dropped_records:
            if entry.access_number == access_number and entry.admission_id:
                return entry.admission_id
        previous = [s for s in self.students if s.access_number == access_number and s.admission_id]
        if previous:
            return max(previous, key=lambda s: s.updated_at).admission_id
        return None

    def find_by_access_number(self, access_number: str) -> Optional[StudentResponse]:
        for student in self.students:
            if student.access_number == access_number and student.status == StudentStatus.ACTIVE:
                return student
        return None

    def find_student(self, student_id: Union[UUID, str]) -> Optional[StudentResponse]:
        for student in self.students:
            if str(student.id) == str(student_id):
                return student
        return None

    def preview_move(self, student_id: Union[UUID, str], class_name: str, stream: str) -> numbering.MovePlan:
        """Identifiers a class/stream change would produce; the backend recomputes on update."""
        student = self.find_student(student_id)
        if student is None:
            raise StudentNotFoundError(f"Student {student_id} not in registry snapshot", 404)
        return numbering.plan_move(student, class_name, stream, self.students, self.dropped_access_numbers)

    # Dropped pool

    async def add_dropped_access_number(
        self,
        access_number: str,
        class_name: Optional[str] = None,
        stream: Optional[str] = None,
        admission_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> DroppedAccessNumberResponse:
        payload = DroppedAccessNumberCreate(
            access_number=access_number,
            class_name=class_name,
            stream=stream,
            admission_id=admission_id,
            reason=reason,
        )
        body = await self._request(
            "POST", "/students/dropped-access-numbers", json=payload.model_dump(mode="json")
        )
        await self.fetch_dropped_access_numbers()
        return DroppedAccessNumberResponse.model_validate(body["data"])

    async def remove_dropped_access_number(self, access_number: str) -> bool:
        body = await self._request("DELETE", f"/students/dropped-access-numbers/{access_number}")
        await self.fetch_dropped_access_numbers()
        return bool(body["data"]["removed"])

    # Mutations

    async def admit_student(self, data: StudentCreate) -> StudentResponse:
        """
        Create a student, proposing the locally computed access number.

        If the backend reports the number as taken, the snapshot is refreshed
        and a new number proposed once. An operator-chosen number is never
        silently replaced.
        """
        explicit = data.access_number is not None
        attempts = 1 if explicit or data.is_readmission else 2

        for attempt in range(1, attempts + 1):
            payload = data
            if not explicit and not data.is_readmission:
                payload = data.model_copy(
                    update={"access_number": self.generate_access_number(data.class_name, data.stream)}
                )
            try:
                body = await self._request("POST", "/students", json=payload.model_dump(mode="json"))
            except AllocationConflictError:
                logger.warning(
                    "Access number conflict on admission",
                    extra={"access_number": payload.access_number, "attempt": attempt},
                )
                await self.refresh()
                if attempt == attempts:
                    raise
                continue

            student = StudentResponse.model_validate(body["data"])
            await self.refresh()
            logger.info(
                "Student admitted",
                extra={"student_id": str(student.id), "access_number": student.access_number},
            )
            return student

        raise AllocationConflictError("Could not allocate an access number", 409)

    async def update_student(self, student_id: Union[UUID, str], data: StudentUpdate) -> StudentResponse:
        body = await self._request(
            "PUT", f"/students/{student_id}", json=data.model_dump(mode="json", exclude_unset=True)
        )
        await self.refresh()
        return StudentResponse.model_validate(body["data"])

    async def delete_student(self, student_id: Union[UUID, str]) -> StudentDeleted:
        body = await self._request("DELETE", f"/students/{student_id}")
        await self.refresh()
        return StudentDeleted.model_validate(body["data"])

    async def flag_student(
        self,
        student_id: Union[UUID, str],
        status: StudentStatus,
        comment: Optional[str] = None,
    ) -> StudentResponse:
        body = await self._request(
            "PATCH",
            f"/students/{student_id}/flag",
            json={"status": status.value, "comment": comment},
        )
        await self.refresh()
        return StudentResponse.model_validate(body["data"])

    # Duplicates

    def detect_duplicates(self) -> List[duplicates.DuplicateGroup]:
        return duplicates.detect_duplicates(self.students)

    async def validate_against_duplicates(
        self,
        candidate: Union[StudentBase, Dict[str, Any]],
        *,
        exclude_id: Optional[Union[UUID, str]] = None,
        strict: bool = False,
        check_recent: bool = True,
        allow_similar: bool = True,
        refresh: bool = False,
    ) -> duplicates.DuplicateValidationResult:
        """
        Check a candidate against the roster.

        With refresh=True the roster is refetched first. A backend that
        cannot be reached does not block the operator: the failure is logged
        and the check reports no duplicate.
        """
        if refresh:
            try:
                await self.fetch_students()
            except RegistryError as exc:
                logger.warning("Duplicate check skipped, roster unavailable", extra={"error": str(exc)})
                return duplicates.DuplicateValidationResult()

        return duplicates.validate_against_duplicates(
            candidate,
            self.students,
            exclude_id=exclude_id,
            strict=strict,
            check_recent=check_recent,
            allow_similar=allow_similar,
        )

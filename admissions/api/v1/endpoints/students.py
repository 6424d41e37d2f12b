from typing import Any, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.api import deps
from admissions.core.rate_limit import MUTATION_LIMIT, limiter
from admissions.models.enums import StudentStatus
from admissions.models.student import Student
from admissions.schemas.responses import PaginatedResponse, SuccessResponse
from admissions.schemas.student import (
    DroppedAccessNumberCreate,
    DroppedAccessNumberResponse,
    DuplicateCheckRequest,
    DuplicateCheckResponse,
    DuplicateGroupResponse,
    NumberAssignmentResponse,
    StudentCreate,
    StudentDeleted,
    StudentFlag,
    StudentResponse,
    StudentUpdate,
)
from admissions.services.student_service import (
    AccessNumberConflictError,
    DuplicateStudentError,
    StudentNotFoundError,
    StudentService,
    StudentServiceError,
)

router = APIRouter()


def _raise_http(exc: StudentServiceError) -> NoReturn:
    """Map service errors onto HTTP responses with a machine-readable code."""
    if isinstance(exc, StudentNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found") from exc
    if isinstance(exc, DuplicateStudentError):
        result = exc.result
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "DUPLICATE_STUDENT",
                "message": result.message,
                "suggestion": result.suggestion,
                "existing_students": [
                    StudentResponse.model_validate(s).model_dump(mode="json")
                    for s in result.existing_students
                ],
            },
        ) from exc
    if isinstance(exc, AccessNumberConflictError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "ACCESS_NUMBER_CONFLICT", "message": str(exc)},
        ) from exc
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": "INVALID_REQUEST", "message": str(exc)},
    ) from exc


@router.get("", response_model=PaginatedResponse[StudentResponse])
async def list_students(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    student_status: Optional[StudentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Full roster, active and flagged students alike unless filtered by status.
    """
    students = await StudentService.list_students(db, student_status)
    serialized = [StudentResponse.model_validate(s) for s in students]
    return PaginatedResponse[StudentResponse].paginate(serialized, page, limit)


@router.get("/dropped-access-numbers", response_model=SuccessResponse[List[DroppedAccessNumberResponse]])
async def list_dropped_access_numbers(db: AsyncSession = Depends(deps.get_db)) -> Any:
    """
    Dropped access number pool, most recently dropped first.
    """
    entries = await StudentService.list_dropped(db)
    return SuccessResponse(data=[DroppedAccessNumberResponse.model_validate(e) for e in entries])


@router.get(
    "/dropped-access-numbers/{class_name}/{stream}",
    response_model=SuccessResponse[List[DroppedAccessNumberResponse]],
)
async def list_dropped_for_class_stream(
    class_name: str,
    stream: str,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    entries = await StudentService.list_dropped(db, class_name=class_name, stream=stream)
    return SuccessResponse(data=[DroppedAccessNumberResponse.model_validate(e) for e in entries])


@router.post("/dropped-access-numbers", response_model=SuccessResponse[DroppedAccessNumberResponse])
async def add_dropped_access_number(
    entry_in: DroppedAccessNumberCreate,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    entry = await StudentService.add_dropped(db, entry_in)
    return SuccessResponse(
        data=DroppedAccessNumberResponse.model_validate(entry),
        message="Access number added to dropped pool",
    )


@router.delete("/dropped-access-numbers/{access_number}", response_model=SuccessResponse)
async def remove_dropped_access_number(
    access_number: str,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Claim a pool entry. Removing a number that is not in the pool is not an error.
    """
    removed = await StudentService.remove_dropped(db, access_number)
    message = "Dropped access number removed" if removed else "Access number was not in the dropped pool"
    return SuccessResponse(data={"access_number": access_number, "removed": removed}, message=message)


@router.get("/available-access-numbers", response_model=SuccessResponse[List[str]])
async def available_access_numbers(
    class_name: str,
    stream: str = "",
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Recyclable numbers for a class/stream that no active student holds.
    """
    numbers = await StudentService.available_access_numbers(db, class_name, stream)
    return SuccessResponse(data=numbers)


@router.get("/duplicates", response_model=SuccessResponse[List[DuplicateGroupResponse]])
async def list_duplicate_groups(db: AsyncSession = Depends(deps.get_db)) -> Any:
    """
    Groups of active students sharing name, class and parent. Informational only.
    """
    groups = await StudentService.find_duplicate_groups(db)
    message = f"Found {len(groups)} duplicate group(s)" if groups else "No duplicates detected"
    return SuccessResponse(data=[DuplicateGroupResponse.model_validate(g) for g in groups], message=message)


@router.post("/check-duplicates", response_model=SuccessResponse[DuplicateCheckResponse])
async def check_duplicates(
    request_in: DuplicateCheckRequest,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    result = await StudentService.check_duplicates(db, request_in)
    return SuccessResponse(data=DuplicateCheckResponse.model_validate(result))


@router.post("/renumber", response_model=SuccessResponse[List[NumberAssignmentResponse]])
@limiter.limit(MUTATION_LIMIT)
async def renumber_students(
    request: Request,
    dry_run: bool = False,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Administrative cleanup: reassign sequential identifiers to all active students.
    """
    try:
        assignments = await StudentService.renumber_all(db, dry_run=dry_run)
    except StudentServiceError as e:
        _raise_http(e)
    changed = sum(1 for a in assignments if a.changed)
    verb = "Would renumber" if dry_run else "Renumbered"
    return SuccessResponse(
        data=[NumberAssignmentResponse.model_validate(a) for a in assignments],
        message=f"{verb} {changed} of {len(assignments)} active students",
    )


@router.post("", response_model=SuccessResponse[StudentResponse])
@limiter.limit(MUTATION_LIMIT)
async def create_student(
    request: Request,
    student_in: StudentCreate,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Admit a student. 400 on a duplicate, 409 when the access number is taken.
    """
    try:
        student = await StudentService.create_student(db, student_in)
    except StudentServiceError as e:
        _raise_http(e)
    return SuccessResponse(data=StudentResponse.model_validate(student), message="Student created successfully")


@router.get("/{student_id}", response_model=SuccessResponse[StudentResponse])
async def get_student(student: Student = Depends(deps.get_student_or_404)) -> Any:
    return SuccessResponse(data=StudentResponse.model_validate(student))


@router.put("/{student_id}", response_model=SuccessResponse[StudentResponse])
@limiter.limit(MUTATION_LIMIT)
async def update_student(
    request: Request,
    student_update: StudentUpdate,
    student: Student = Depends(deps.get_student_or_404),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    try:
        updated = await StudentService.update_student(db, student.id, student_update)
    except StudentServiceError as e:
        _raise_http(e)
    return SuccessResponse(data=StudentResponse.model_validate(updated), message="Student updated successfully")


@router.delete("/{student_id}", response_model=SuccessResponse[StudentDeleted])
@limiter.limit(MUTATION_LIMIT)
async def delete_student(
    request: Request,
    student: Student = Depends(deps.get_student_or_404),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Hard delete. The access number goes to the dropped pool unless it was the highest in its stream.
    """
    try:
        deleted, released, highest = await StudentService.delete_student(db, student.id)
    except StudentServiceError as e:
        _raise_http(e)
    return SuccessResponse(
        data=StudentDeleted(
            id=deleted.id,
            access_number=deleted.access_number,
            released_access_number=released,
            is_highest_numbered=highest,
        ),
        message="Student deleted successfully",
    )


@router.patch("/{student_id}/flag", response_model=SuccessResponse[StudentResponse])
@limiter.limit(MUTATION_LIMIT)
async def flag_student(
    request: Request,
    flag_in: StudentFlag,
    student: Student = Depends(deps.get_student_or_404),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Soft status change (left, transferred, expelled, graduated, re-admitted).
    """
    try:
        flagged = await StudentService.flag_student(db, student.id, flag_in.status, flag_in.comment)
    except StudentServiceError as e:
        _raise_http(e)
    return SuccessResponse(
        data=StudentResponse.model_validate(flagged),
        message=f"Student flagged as {flagged.status.value}",
    )

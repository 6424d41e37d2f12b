"""Student Service - Business Logic Layer"""

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.logging import get_logger
from admissions.models.enums import StudentStatus
from admissions.models.student import DroppedAccessNumber, Student
from admissions.schemas.student import (
    DroppedAccessNumberCreate,
    DuplicateCheckRequest,
    StudentBase,
    StudentCreate,
    StudentUpdate,
)
from admissions.services.duplicates import (
    DuplicateGroup,
    DuplicateValidationResult,
    detect_duplicates,
    validate_against_duplicates,
)
from admissions.services.numbering import (
    NumberAssignment,
    access_prefix,
    generate_access_number,
    generate_admission_id,
    get_available_access_numbers,
    in_class_stream,
    is_highest_numbered,
    is_well_formed,
    plan_move,
    renumber_roster,
    should_release_access_number,
)

logger = get_logger(__name__)


class StudentServiceError(ValueError):
    """Base error for student operations the caller can act on"""


class StudentNotFoundError(StudentServiceError):
    pass


class DuplicateStudentError(StudentServiceError):
    def __init__(self, result: DuplicateValidationResult):
        super().__init__(result.message or "Duplicate student detected")
        self.result = result


class AccessNumberConflictError(StudentServiceError):
    pass


class InvalidStatusTransitionError(StudentServiceError):
    pass


class StudentService:
    """Service layer for admissions, identifiers and the dropped number pool"""

    @staticmethod
    async def _load_roster(db: AsyncSession) -> List[Student]:
        result = await db.execute(select(Student).order_by(Student.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def _load_pool(db: AsyncSession) -> List[DroppedAccessNumber]:
        result = await db.execute(select(DroppedAccessNumber).order_by(DroppedAccessNumber.dropped_at))
        return list(result.scalars().all())

    @staticmethod
    async def _commit(db: AsyncSession, student: Optional[Student] = None) -> None:
        """Commit, translating unique index violations into allocation conflicts."""
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            logger.warning("Identifier conflict on commit", extra={"error": str(exc.orig)})
            raise AccessNumberConflictError(
                "Access number or admission id is already taken by an active student, please retry"
            ) from exc
        if student is not None:
            await db.refresh(student)

    @staticmethod
    async def _release(db: AsyncSession, student: Student, reason: str) -> None:
        """Park a student's access number in the pool (idempotent)."""
        existing = await db.execute(
            select(DroppedAccessNumber).where(DroppedAccessNumber.access_number == student.access_number)
        )
        if existing.scalar_one_or_none():
            return
        db.add(DroppedAccessNumber(
            access_number=student.access_number,
            class_name=student.class_name,
            stream=student.stream,
            admission_id=student.admission_id,
            reason=reason,
        ))
        logger.info(
            "Access number added to dropped pool",
            extra={"access_number": student.access_number, "reason": reason},
        )

    @staticmethod
    async def _claim(db: AsyncSession, access_number: str) -> None:
        result = await db.execute(
            delete(DroppedAccessNumber).where(DroppedAccessNumber.access_number == access_number)
        )
        if result.rowcount:
            logger.info("Reusing dropped access number", extra={"access_number": access_number})

    # Students

    @staticmethod
    async def list_students(db: AsyncSession, status: Optional[StudentStatus] = None) -> List[Student]:
        query = select(Student).order_by(Student.created_at)
        if status is not None:
            query = query.where(Student.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_student(db: AsyncSession, student_id: UUID) -> Optional[Student]:
        result = await db.execute(select(Student).where(Student.id == student_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_student(db: AsyncSession, data: StudentCreate) -> Student:
        """
        Admit a student.

        Access number resolution: the original number of a re-admitted
        student if nobody active holds it, then a number proposed by the
        client, then a generated one (recycled from the pool first).
        """
        roster = await StudentService._load_roster(db)

        duplicate = validate_against_duplicates(data, roster, strict=True, check_recent=False)
        if duplicate.blocks_submission:
            logger.info(
                "Duplicate admission rejected",
                extra={"student_name": data.name, "class_name": data.class_name},
            )
            raise DuplicateStudentError(duplicate)

        held = {s.access_number for s in roster if s.is_active and s.access_number}
        prefix = access_prefix(data.class_name, data.stream)
        access_number = None

        if data.is_readmission and data.original_access_number:
            original = data.original_access_number
            if not is_well_formed(original):
                raise StudentServiceError(f"Original access number {original} is not a valid access number")
            if not is_well_formed(original, prefix):
                logger.info(
                    "Original access number belongs to another class or stream, generating a new one",
                    extra={"access_number": original, "prefix": prefix},
                )
            elif original in held:
                logger.info(
                    "Original access number taken, generating a new one",
                    extra={"access_number": original},
                )
            else:
                access_number = original

        if access_number is None and data.access_number:
            if not is_well_formed(data.access_number, prefix):
                raise StudentServiceError(
                    f"Access number {data.access_number} is not a valid number for "
                    f"{data.class_name} {data.stream} (expected {prefix} followed by its sequence)"
                )
            if data.access_number in held:
                raise AccessNumberConflictError(f"Access number {data.access_number} is already in use")
            access_number = data.access_number

        if access_number is None:
            pool = [entry.access_number for entry in await StudentService._load_pool(db)]
            access_number = generate_access_number(roster, pool, data.class_name, data.stream)

        admission_id = generate_admission_id(roster, data.class_name, avoid_collisions=True)

        await StudentService._claim(db, access_number)
        student = Student(
            name=data.name.strip(),
            class_name=data.class_name.strip(),
            stream=data.stream.strip(),
            parent_name=data.parent_name,
            status=StudentStatus.ACTIVE,
            access_number=access_number,
            admission_id=admission_id,
            is_readmission=data.is_readmission,
        )
        db.add(student)
        await StudentService._commit(db, student)

        logger.info(
            "Student admitted",
            extra={"student_id": str(student.id), "access_number": access_number, "admission_id": admission_id},
        )
        return student

    @staticmethod
    async def update_student(db: AsyncSession, student_id: UUID, data: StudentUpdate) -> Student:
        """
        Update descriptive fields. Moving an active student to another
        class/stream reallocates both identifiers.
        """
        student = await StudentService.get_student(db, student_id)
        if not student:
            raise StudentNotFoundError(f"Student {student_id} not found")

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return student

        new_class = changes.get("class_name", student.class_name)
        new_stream = changes.get("stream", student.stream)
        roster = await StudentService._load_roster(db)

        if student.is_active:
            candidate = StudentBase(
                name=changes.get("name", student.name),
                class_name=new_class,
                stream=new_stream,
                parent_name=changes.get("parent_name", student.parent_name),
            )
            duplicate = validate_against_duplicates(
                candidate, roster, exclude_id=student.id, strict=True, check_recent=False
            )
            if duplicate.blocks_submission:
                raise DuplicateStudentError(duplicate)

        if student.is_active and not in_class_stream(student, new_class, new_stream):
            pool = [entry.access_number for entry in await StudentService._load_pool(db)]
            plan = plan_move(student, new_class, new_stream, roster, pool)
            if plan.release:
                await StudentService._release(db, student, reason=f"Student moved to {new_class} {new_stream}")
            if plan.claim:
                await StudentService._claim(db, plan.claim)
            logger.info(
                "Student moved, identifiers reallocated",
                extra={
                    "student_id": str(student.id),
                    "old_access_number": student.access_number,
                    "access_number": plan.access_number,
                    "admission_id": plan.admission_id,
                },
            )
            student.access_number = plan.access_number
            student.admission_id = plan.admission_id

        for field, value in changes.items():
            setattr(student, field, value.strip() if isinstance(value, str) else value)

        await StudentService._commit(db, student)
        return student

    @staticmethod
    async def delete_student(db: AsyncSession, student_id: UUID) -> Tuple[Student, Optional[str], bool]:
        """
        Permanently delete a student.

        Returns (deleted student, released access number or None, whether it
        held the highest number in its class/stream).
        """
        student = await StudentService.get_student(db, student_id)
        if not student:
            raise StudentNotFoundError(f"Student {student_id} not found")

        roster = await StudentService._load_roster(db)
        highest = is_highest_numbered(student, roster)
        released = None
        if should_release_access_number(student, roster):
            await StudentService._release(db, student, reason="Student deleted")
            released = student.access_number

        await db.delete(student)
        await StudentService._commit(db)

        logger.info(
            "Student deleted",
            extra={"student_id": str(student_id), "access_number": student.access_number, "released": released},
        )
        return student, released, highest

    @staticmethod
    async def flag_student(
        db: AsyncSession,
        student_id: UUID,
        status: StudentStatus,
        comment: Optional[str] = None,
    ) -> Student:
        """Soft status change; the row and its identifiers stay for reference."""
        if status == StudentStatus.ACTIVE:
            raise InvalidStatusTransitionError("Flagging cannot reactivate a student, admit them again instead")

        student = await StudentService.get_student(db, student_id)
        if not student:
            raise StudentNotFoundError(f"Student {student_id} not found")

        if student.is_active:
            roster = await StudentService._load_roster(db)
            if should_release_access_number(student, roster, status):
                await StudentService._release(db, student, reason=f"Student flagged as {status.value}")

        student.status = status
        student.flag_comment = comment or ""
        await StudentService._commit(db, student)

        logger.info(
            "Student flagged",
            extra={"student_id": str(student.id), "status": status.value, "access_number": student.access_number},
        )
        return student

    # Dropped access number pool

    @staticmethod
    async def list_dropped(
        db: AsyncSession,
        class_name: Optional[str] = None,
        stream: Optional[str] = None,
    ) -> List[DroppedAccessNumber]:
        query = select(DroppedAccessNumber).order_by(DroppedAccessNumber.dropped_at.desc())
        if class_name is not None:
            query = query.where(DroppedAccessNumber.class_name == class_name)
        if stream is not None:
            query = query.where(DroppedAccessNumber.stream == stream)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def add_dropped(db: AsyncSession, data: DroppedAccessNumberCreate) -> DroppedAccessNumber:
        result = await db.execute(
            select(DroppedAccessNumber).where(DroppedAccessNumber.access_number == data.access_number)
        )
        entry = result.scalar_one_or_none()
        if entry:
            return entry

        entry = DroppedAccessNumber(**data.model_dump())
        db.add(entry)
        await db.commit()
        await db.refresh(entry)
        return entry

    @staticmethod
    async def remove_dropped(db: AsyncSession, access_number: str) -> bool:
        result = await db.execute(
            delete(DroppedAccessNumber).where(DroppedAccessNumber.access_number == access_number)
        )
        await db.commit()
        return bool(result.rowcount)

    @staticmethod
    async def available_access_numbers(db: AsyncSession, class_name: str, stream: str) -> List[str]:
        roster = await StudentService._load_roster(db)
        pool = [entry.access_number for entry in await StudentService._load_pool(db)]
        return get_available_access_numbers(roster, pool, class_name, stream)

    # Duplicates

    @staticmethod
    async def find_duplicate_groups(db: AsyncSession) -> List[DuplicateGroup]:
        roster = await StudentService.list_students(db, StudentStatus.ACTIVE)
        return detect_duplicates(roster)

    @staticmethod
    async def check_duplicates(db: AsyncSession, request: DuplicateCheckRequest) -> DuplicateValidationResult:
        roster = await StudentService.list_students(db, StudentStatus.ACTIVE)
        return validate_against_duplicates(
            request,
            roster,
            exclude_id=request.exclude_id,
            strict=request.strict,
            check_recent=request.check_recent,
            allow_similar=request.allow_similar,
        )

    # Administration

    @staticmethod
    async def renumber_all(db: AsyncSession, dry_run: bool = False) -> List[NumberAssignment]:
        """
        Reassign sequential identifiers to every active student.

        Changed rows are first parked on temporary values so the partial
        unique indexes never see two active rows with the same identifier.
        Pool entries for renumbered prefixes are discarded since the
        sequences are compact afterwards.
        """
        roster = await StudentService._load_roster(db)
        assignments = renumber_roster(roster)
        changed = [a for a in assignments if a.changed]
        if dry_run or not changed:
            return assignments

        by_id = {str(s.id): s for s in roster}
        for assignment in changed:
            student = by_id[str(assignment.student_id)]
            parked = f"~{student.id.hex[:12]}"
            student.access_number = parked
            student.admission_id = parked
        await db.flush()

        for assignment in changed:
            student = by_id[str(assignment.student_id)]
            student.access_number = assignment.access_number
            student.admission_id = assignment.admission_id

        prefixes = {access_prefix(s.class_name, s.stream) for s in roster if s.is_active}
        if prefixes:
            await db.execute(
                delete(DroppedAccessNumber).where(
                    or_(*(DroppedAccessNumber.access_number.startswith(p) for p in prefixes))
                )
            )
        await StudentService._commit(db)

        logger.info(
            "Student identifiers renumbered",
            extra={"active_students": len(assignments), "changed": len(changed)},
        )
        return assignments

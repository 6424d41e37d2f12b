"""API Dependencies"""

from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.database import get_db
from admissions.models.student import Student
from admissions.services.student_service import StudentService

__all__ = ["get_db", "get_student_or_404"]


async def get_student_or_404(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Student:
    """
    Resolve the {student_id} path parameter to a student.

    Raises:
        HTTPException: 404 if no student has that id
    """
    student = await StudentService.get_student(db, student_id)
    if not student:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found",
        )
    return student

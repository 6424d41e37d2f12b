"""Student and dropped access number models"""

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text, text
from sqlalchemy.dialects.postgresql import ENUM

from admissions.models.base import BaseModel
from admissions.models.enums import StudentStatus
from admissions.utils.time import get_utc_now


class Student(BaseModel):
    """
    Admitted student.

    access_number is unique per class+stream among active students and
    admission_id unique per enrollment year among active students; both are
    enforced by partial unique indexes so inactive rows may keep their old
    identifiers for reference.
    """
    __tablename__ = "students"

    name = Column(String(255), nullable=False, index=True)
    class_name = Column(String(100), nullable=False, index=True)
    stream = Column(String(100), nullable=False, default="")
    parent_name = Column(String(255), nullable=True)

    status = Column(
        ENUM(StudentStatus, name="student_status", values_callable=lambda x: [e.value for e in x]),
        default=StudentStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    access_number = Column(String(20), nullable=True, index=True)
    admission_id = Column(String(20), nullable=True, index=True)
    flag_comment = Column(Text, nullable=True)
    is_readmission = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index(
            "ux_students_active_access_number",
            "access_number",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        Index(
            "ux_students_active_admission_id",
            "admission_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == StudentStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Student {self.name} {self.access_number} ({self.status})>"


class DroppedAccessNumber(BaseModel):
    """An access number released by a flagged or deleted student, eligible for reuse"""
    __tablename__ = "dropped_access_numbers"

    access_number = Column(String(20), nullable=False, unique=True, index=True)
    class_name = Column(String(100), nullable=True)
    stream = Column(String(100), nullable=True)
    # Admission id of the student who released the number
    admission_id = Column(String(20), nullable=True)
    reason = Column(String(255), nullable=True)
    dropped_at = Column(DateTime, default=get_utc_now, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<DroppedAccessNumber {self.access_number}>"

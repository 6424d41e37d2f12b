"""Student Pydantic Schemas"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from admissions.models.enums import DuplicateSeverity, StudentStatus


class StudentBase(BaseModel):
    """Descriptive fields shared by create, update and response schemas"""
    name: str = Field(..., min_length=1, max_length=255)
    class_name: str = Field(..., min_length=1, max_length=100, description='e.g. "Senior 1"')
    stream: str = Field("", max_length=100)
    parent_name: Optional[str] = Field(None, max_length=255)


class StudentCreate(StudentBase):
    """
    Admission request.

    access_number is optional: clients may propose one (a recycled number
    picked by the operator, or their own advisory computation) and the
    backend rejects it with 409 when an active student already holds it.
    """
    access_number: Optional[str] = Field(None, max_length=20)
    is_readmission: bool = False
    original_access_number: Optional[str] = Field(None, max_length=20)


class StudentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    class_name: Optional[str] = Field(None, min_length=1, max_length=100)
    stream: Optional[str] = Field(None, max_length=100)
    parent_name: Optional[str] = Field(None, max_length=255)

    @field_validator("name", "class_name", "stream")
    @classmethod
    def required_fields_not_null(cls, v: Optional[str]) -> str:
        """May be omitted, but only parent_name can be cleared with null"""
        if v is None:
            raise ValueError("cannot be null")
        return v


class StudentFlag(BaseModel):
    status: StudentStatus
    comment: Optional[str] = None


class StudentResponse(StudentBase):
    id: UUID
    status: StudentStatus
    access_number: Optional[str] = None
    admission_id: Optional[str] = None
    flag_comment: Optional[str] = None
    is_readmission: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StudentDeleted(BaseModel):
    id: UUID
    access_number: Optional[str] = None
    released_access_number: Optional[str] = None
    is_highest_numbered: bool = False


class DroppedAccessNumberCreate(BaseModel):
    access_number: str = Field(..., min_length=1, max_length=20)
    class_name: Optional[str] = None
    stream: Optional[str] = None
    admission_id: Optional[str] = None
    reason: Optional[str] = None


class DroppedAccessNumberResponse(BaseModel):
    id: UUID
    access_number: str
    class_name: Optional[str] = None
    stream: Optional[str] = None
    admission_id: Optional[str] = None
    reason: Optional[str] = None
    dropped_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DuplicateCheckRequest(BaseModel):
    name: str
    class_name: Optional[str] = None
    parent_name: Optional[str] = None
    exclude_id: Optional[UUID] = None
    strict: bool = True
    check_recent: bool = True
    allow_similar: bool = True


class DuplicateCheckResponse(BaseModel):
    is_duplicate: bool
    severity: DuplicateSeverity
    message: Optional[str] = None
    suggestion: Optional[str] = None
    existing_students: List[StudentResponse] = []

    model_config = ConfigDict(from_attributes=True)


class DuplicateGroupResponse(BaseModel):
    key: str
    students: List[StudentResponse]

    model_config = ConfigDict(from_attributes=True)


class NumberAssignmentResponse(BaseModel):
    student_id: UUID
    access_number: str
    admission_id: str
    previous_access_number: Optional[str] = None
    previous_admission_id: Optional[str] = None
    changed: bool

    model_config = ConfigDict(from_attributes=True)

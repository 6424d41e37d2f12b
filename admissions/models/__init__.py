"""Models Package - Export all models for easy imports"""

from admissions.models.base import BaseModel
from admissions.models.enums import DuplicateCheckState, DuplicateSeverity, StudentStatus
from admissions.models.student import DroppedAccessNumber, Student


__all__ = [
    # Base classes
    "BaseModel",

    # Enums
    "StudentStatus",
    "DuplicateSeverity",
    "DuplicateCheckState",

    # Students
    "Student",
    "DroppedAccessNumber",
]

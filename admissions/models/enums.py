"""Centralized Enum Definitions"""

import enum


class StudentStatus(str, enum.Enum):
    """Enrollment status. Only ACTIVE students hold identifiers exclusively."""
    ACTIVE = "active"
    LEFT = "left"
    TRANSFERRED = "transferred"
    EXPELLED = "expelled"
    GRADUATED = "graduated"
    RE_ADMITTED = "re-admitted"


class DuplicateSeverity(str, enum.Enum):
    """How strongly a duplicate match should gate a submission"""
    NONE = "none"
    WARNING = "warning"
    ERROR = "error"


class DuplicateCheckState(str, enum.Enum):
    """Live duplicate check state for one admission form session"""
    IDLE = "idle"
    CHECKING = "checking"
    CLEAR = "clear"
    WARNED_DUPLICATE = "warned_duplicate"
    BLOCKED_DUPLICATE = "blocked_duplicate"

"""
Duplicate Detector - probable duplicate students.

Matching is exact on a normalized (name, class, parent) key: no fuzzy
matching, so two different children sharing a name in different classes
are never confused. Only active students are compared.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from admissions.config import settings
from admissions.models.enums import DuplicateSeverity, StudentStatus
from admissions.utils.time import as_naive_utc, get_utc_now


@dataclass
class DuplicateGroup:
    """Two or more active students sharing a key, oldest enrollment first"""
    key: str
    students: List[Any]


@dataclass
class DuplicateValidationResult:
    is_duplicate: bool = False
    severity: DuplicateSeverity = DuplicateSeverity.NONE
    message: Optional[str] = None
    suggestion: Optional[str] = None
    existing_students: List[Any] = field(default_factory=list)

    @property
    def blocks_submission(self) -> bool:
        return self.severity == DuplicateSeverity.ERROR


def _get(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def is_active(student: Any) -> bool:
    return _get(student, "status") == StudentStatus.ACTIVE


def normalize_name(value: Optional[str]) -> str:
    return " ".join(str(value or "").split()).lower()


def normalize_class(value: Optional[str]) -> str:
    return " ".join(str(value or "").split())


def duplicate_key(name: Optional[str], class_name: Optional[str], parent_name: Optional[str]) -> str:
    return f"{normalize_name(name)}|{normalize_class(class_name)}|{normalize_name(parent_name)}"


def student_key(student: Any) -> str:
    return duplicate_key(_get(student, "name"), _get(student, "class_name"), _get(student, "parent_name"))


def _created(student: Any) -> datetime:
    created = _get(student, "created_at")
    return as_naive_utc(created) if created else datetime.min


def detect_duplicates(students: List[Any]) -> List[DuplicateGroup]:
    """Group active students by key; every group of two or more is reported."""
    groups: Dict[str, List[Any]] = {}
    for student in students:
        if not is_active(student) or not normalize_name(_get(student, "name")):
            continue
        groups.setdefault(student_key(student), []).append(student)

    return [
        DuplicateGroup(key=key, students=sorted(members, key=_created))
        for key, members in groups.items()
        if len(members) > 1
    ]


def validate_against_duplicates(
    candidate: Any,
    students: List[Any],
    *,
    exclude_id: Any = None,
    strict: bool = False,
    check_recent: bool = True,
    allow_similar: bool = True,
    now: Optional[datetime] = None,
    recent_window: Optional[timedelta] = None,
) -> DuplicateValidationResult:
    """
    Classify a candidate record against the roster.

    Strict mode (submission) reports exact matches as errors that block;
    non-strict mode (live typing) reports them as warnings. The student being
    edited, if any, is passed as exclude_id and never matches itself.
    """
    name = _get(candidate, "name")
    class_name = _get(candidate, "class_name")
    if not normalize_name(name):
        return DuplicateValidationResult()

    roster = [
        s for s in students
        if is_active(s) and (exclude_id is None or str(_get(s, "id")) != str(exclude_id))
    ]

    key = duplicate_key(name, class_name, _get(candidate, "parent_name"))
    exact = sorted((s for s in roster if student_key(s) == key), key=_created)
    if exact:
        return DuplicateValidationResult(
            is_duplicate=True,
            severity=DuplicateSeverity.ERROR if strict else DuplicateSeverity.WARNING,
            message=(
                f'A student named "{name}" already exists in class "{normalize_class(class_name)}" '
                "with the same parent information."
            ),
            suggestion="Did you mean to edit the existing student record instead?",
            existing_students=exact,
        )

    same_name = sorted(
        (s for s in roster if normalize_name(_get(s, "name")) == normalize_name(name)),
        key=_created,
    )

    if check_recent and same_name:
        if recent_window is None:
            recent_window = timedelta(minutes=settings.RECENT_DUPLICATE_WINDOW_MINUTES)
        cutoff = as_naive_utc(now or get_utc_now()) - recent_window
        recent = [s for s in same_name if _get(s, "created_at") and _created(s) >= cutoff]
        if recent:
            minutes = int(recent_window.total_seconds() // 60)
            return DuplicateValidationResult(
                is_duplicate=True,
                severity=DuplicateSeverity.WARNING,
                message=f"A student with this name was created within the last {minutes} minutes.",
                suggestion="Check this is not a repeated submission before saving again.",
                existing_students=recent,
            )

    if not allow_similar and same_name:
        listed = ", ".join(f"{_get(s, 'name')} ({_get(s, 'class_name')})" for s in same_name)
        return DuplicateValidationResult(
            is_duplicate=True,
            severity=DuplicateSeverity.WARNING,
            message=f"Students with the same name exist: {listed}.",
            suggestion="If this is the same student, edit the existing record instead of creating a new one.",
            existing_students=same_name,
        )

    return DuplicateValidationResult()


def format_duplicate_message(result: DuplicateValidationResult) -> str:
    """Operator-facing text listing the conflicting records."""
    if not result.message:
        return ""

    lines = [result.message]
    if result.existing_students:
        lines.append("")
        lines.append("Existing student(s):")
        for student in result.existing_students:
            lines.append(
                f"- {_get(student, 'name')} ({_get(student, 'access_number') or 'no access number'}, "
                f"{_get(student, 'class_name')})"
            )
    if result.suggestion:
        lines.append("")
        lines.append(f"Suggestion: {result.suggestion}")
    return "\n".join(lines)

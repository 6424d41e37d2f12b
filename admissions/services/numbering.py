"""
Identifier Allocator - access numbers and admission ids.

Access number:  <ClassCode><StreamCode><NN>, e.g. AA01 (Senior 1, stream A).
Admission id:   A<YY><ClassCode><NN>,        e.g. A25A07.

Everything here is a pure computation over the roster and dropped pool the
caller passes in. Records only need the attributes id, class_name, stream,
status, access_number, admission_id and created_at, so ORM rows and API
schemas both work. The results are advisory on the client; the backend
re-runs them inside its own transaction and its unique indexes decide.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from admissions.config import settings
from admissions.models.enums import StudentStatus
from admissions.utils.time import as_naive_utc, short_year

UNKNOWN_CODE = "X"

CLASS_CODES: Dict[str, str] = {
    "senior 1": "A",
    "senior 2": "B",
    "senior 3": "C",
    "senior 4": "D",
    "senior 5": "E",
    "senior 6": "F",
}

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def _clean(value: Any) -> str:
    return " ".join(str(value or "").split())


def class_code(class_name: Optional[str]) -> str:
    """Single-letter class code; unknown or missing classes map to 'X'."""
    return CLASS_CODES.get(_clean(class_name).lower(), UNKNOWN_CODE)


def stream_code(stream: Optional[str]) -> str:
    """First letter of the stream, uppercased; 'X' when missing or not a letter."""
    cleaned = _clean(stream)
    if not cleaned:
        return UNKNOWN_CODE
    first = cleaned[0].upper()
    return first if "A" <= first <= "Z" else UNKNOWN_CODE


def access_prefix(class_name: Optional[str], stream: Optional[str]) -> str:
    return f"{class_code(class_name)}{stream_code(stream)}"


def access_suffix(access_number: Optional[str]) -> Optional[int]:
    """Numeric tail of an identifier, None if it has none."""
    if not access_number:
        return None
    match = _TRAILING_DIGITS.search(access_number)
    return int(match.group(1)) if match else None


def format_access_number(prefix: str, sequence: int, digits: Optional[int] = None) -> str:
    width = digits or settings.ACCESS_NUMBER_DIGITS
    return f"{prefix}{sequence:0{width}d}"


def is_well_formed(access_number: Optional[str], prefix: Optional[str] = None) -> bool:
    """
    True for <ClassCode><StreamCode><NN> with a sequence of at least 1,
    zero-padded to the configured width ("AA01", never "AA1" or "AA-01").
    """
    if not access_number or len(access_number) < 3:
        return False
    head = access_number[:2]
    if prefix is not None and head != prefix:
        return False
    if not (head.isalpha() and head.isupper()):
        return False
    sequence = access_suffix(access_number)
    return bool(sequence) and access_number == format_access_number(head, sequence)


def is_active(student: Any) -> bool:
    return getattr(student, "status", None) == StudentStatus.ACTIVE


def in_class_stream(student: Any, class_name: Optional[str], stream: Optional[str]) -> bool:
    return (
        _clean(student.class_name) == _clean(class_name)
        and _clean(student.stream) == _clean(stream)
    )


def _same_student(a: Any, b: Any) -> bool:
    return str(a.id) == str(b.id)


def _pool_entries(dropped: Iterable[str], prefix: str) -> Dict[int, str]:
    """Pool entries belonging to a prefix, keyed by numeric suffix."""
    entries: Dict[int, str] = {}
    for number in dropped:
        if not number or not number.startswith(prefix):
            continue
        tail = number[len(prefix):]
        if tail.isdigit():
            entries.setdefault(int(tail), number)
    return entries


def _held_numbers(students: Iterable[Any]) -> Set[str]:
    return {s.access_number for s in students if is_active(s) and s.access_number}


def get_available_access_numbers(
    students: Sequence[Any],
    dropped: Iterable[str],
    class_name: Optional[str],
    stream: Optional[str],
) -> List[str]:
    """Dropped numbers for this class/stream that no active student holds, lowest first."""
    prefix = access_prefix(class_name, stream)
    held = _held_numbers(students)
    entries = _pool_entries(dropped, prefix)
    return [entries[n] for n in sorted(entries) if entries[n] not in held]


def generate_access_number(
    students: Sequence[Any],
    dropped: Iterable[str],
    class_name: Optional[str],
    stream: Optional[str],
    *,
    reuse_tail_when_empty: Optional[bool] = None,
    digits: Optional[int] = None,
) -> str:
    """
    Next access number for a class/stream.

    A recyclable pool number is handed out before anything new is minted.
    Minting walks upward from 1 and skips numbers held by active students
    as well as numbers parked in the pool.
    """
    dropped = list(dropped)
    available = get_available_access_numbers(students, dropped, class_name, stream)
    if available:
        return available[0]

    prefix = access_prefix(class_name, stream)
    held = _held_numbers(students)
    used = {
        access_suffix(s.access_number)
        for s in students
        if is_active(s) and in_class_stream(s, class_name, stream)
    }
    used.discard(None)

    if reuse_tail_when_empty is None:
        reuse_tail_when_empty = settings.REUSE_TAIL_WHEN_STREAM_EMPTY
    if reuse_tail_when_empty and not used:
        issued = [
            access_suffix(s.access_number)
            for s in students
            if in_class_stream(s, class_name, stream)
            and (s.access_number or "").startswith(prefix)
        ]
        issued = [n for n in issued if n]
        if issued:
            candidate = format_access_number(prefix, max(issued), digits)
            if candidate not in held:
                return candidate

    # Numbers held under the same prefix by other classes/streams (sentinel codes) are blocked too
    blocked = used | set(_pool_entries(dropped, prefix)) | set(_pool_entries(held, prefix))
    sequence = 1
    while sequence in blocked:
        sequence += 1
    return format_access_number(prefix, sequence, digits)


def generate_admission_id(
    students: Sequence[Any],
    class_name: Optional[str],
    on: Optional[Union[date, datetime]] = None,
    *,
    avoid_collisions: bool = False,
    digits: Optional[int] = None,
) -> str:
    """
    Admission id for a student enrolled on `on` (default today).

    The sequence is the school-wide count of ids issued for that year plus
    one. A count is not collision-proof once records are deleted, so the
    backend passes avoid_collisions to step past sequences held by active
    students.
    """
    year = short_year(on)
    year_prefix = f"A{year}"
    width = digits or settings.ADMISSION_SEQUENCE_DIGITS
    issued = [s for s in students if (s.admission_id or "").startswith(year_prefix)]
    sequence = len(issued) + 1

    if avoid_collisions:
        taken = {access_suffix(s.admission_id) for s in issued if is_active(s)}
        while sequence in taken:
            sequence += 1

    return f"{year_prefix}{class_code(class_name)}{sequence:0{width}d}"


def is_highest_numbered(student: Any, students: Sequence[Any]) -> bool:
    """True when no other active student in the same class/stream holds a higher number."""
    own = access_suffix(student.access_number)
    if own is None:
        return False
    others = [
        access_suffix(s.access_number)
        for s in students
        if is_active(s)
        and not _same_student(s, student)
        and in_class_stream(s, student.class_name, student.stream)
    ]
    others = [n for n in others if n is not None]
    return not others or own >= max(others)


def should_release_access_number(
    student: Any,
    students: Sequence[Any],
    new_status: Optional[StudentStatus] = None,
) -> bool:
    """
    Whether a student leaving active status sends its number to the pool.

    The highest number in a class/stream is retired instead so the pool does
    not fill up with tail numbers. Re-admitted students keep their old
    number for reference and it is never recycled.
    """
    if not is_active(student) or not student.access_number:
        return False
    if new_status == StudentStatus.RE_ADMITTED:
        return False
    return not is_highest_numbered(student, students)


@dataclass
class MovePlan:
    """Identifier changes for a student changing class or stream"""
    release: Optional[str]
    claim: Optional[str]
    access_number: str
    admission_id: str


def plan_move(
    student: Any,
    new_class: Optional[str],
    new_stream: Optional[str],
    students: Sequence[Any],
    dropped: Iterable[str],
    on: Optional[Union[date, datetime]] = None,
) -> MovePlan:
    dropped = list(dropped)
    release = student.access_number if should_release_access_number(student, students) else None
    others = [s for s in students if not _same_student(s, student)]

    available = get_available_access_numbers(others, dropped, new_class, new_stream)
    if available:
        claim = available[0]
        access_number = claim
    else:
        claim = None
        access_number = generate_access_number(
            others, dropped, new_class, new_stream, reuse_tail_when_empty=False
        )

    if release == access_number:
        release = None

    admission_id = generate_admission_id(students, new_class, on, avoid_collisions=True)
    return MovePlan(release=release, claim=claim, access_number=access_number, admission_id=admission_id)


@dataclass
class NumberAssignment:
    """Identifiers one student ends up with after a renumbering pass"""
    student_id: Any
    access_number: str
    admission_id: str
    previous_access_number: Optional[str] = None
    previous_admission_id: Optional[str] = None

    @property
    def changed(self) -> bool:
        return (
            self.access_number != self.previous_access_number
            or self.admission_id != self.previous_admission_id
        )


def _enrollment_order(student: Any) -> Tuple[datetime, str]:
    created = as_naive_utc(student.created_at) if student.created_at else datetime.min
    return (created, str(student.id))


def renumber_roster(students: Sequence[Any]) -> List[NumberAssignment]:
    """
    Reassign every active student's identifiers sequentially from 1.

    Access numbers restart per class/stream prefix, admission ids per
    enrollment year, both in created_at order. Only for an explicit
    administrative cleanup: identifiers of untouched students change.
    """
    active = sorted((s for s in students if is_active(s)), key=_enrollment_order)

    access: Dict[str, str] = {}
    by_prefix: Dict[str, List[Any]] = {}
    for student in active:
        by_prefix.setdefault(access_prefix(student.class_name, student.stream), []).append(student)
    for prefix, group in by_prefix.items():
        for index, student in enumerate(group, start=1):
            access[str(student.id)] = format_access_number(prefix, index)

    admission: Dict[str, str] = {}
    by_year: Dict[str, List[Any]] = {}
    for student in active:
        by_year.setdefault(short_year(student.created_at), []).append(student)
    width = settings.ADMISSION_SEQUENCE_DIGITS
    for year, group in by_year.items():
        for index, student in enumerate(group, start=1):
            admission[str(student.id)] = f"A{year}{class_code(student.class_name)}{index:0{width}d}"

    return [
        NumberAssignment(
            student_id=student.id,
            access_number=access[str(student.id)],
            admission_id=admission[str(student.id)],
            previous_access_number=student.access_number,
            previous_admission_id=student.admission_id,
        )
        for student in active
    ]

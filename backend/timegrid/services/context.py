from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from timegrid.services.grid import BLOCK_SESSION_TYPES, Cell
from timegrid.services.mandatory import MANDATORY_FACULTY_TAGS


@dataclass(frozen=True)
class SubjectSpec:
    id: str
    code: str
    name: str
    session_type: str
    hours_per_week: int
    is_mandatory: bool
    mandatory_rank: int | None
    department: str | None
    year: int | None

    @property
    def is_block(self) -> bool:
        return self.session_type in BLOCK_SESSION_TYPES


@dataclass(frozen=True)
class FacultySpec:
    id: str
    name: str
    specialization: frozenset[str]
    department: str | None
    max_hours_per_week: int
    max_hours_per_day: int


@dataclass(frozen=True)
class RoomSpec:
    id: str
    name: str
    capacity: int
    equipment: frozenset[str]
    room_type: str | None = None


@dataclass(frozen=True)
class BreakWindow:
    name: str
    break_type: str
    start: int
    end: int
    duration: int
    slots: tuple[int, ...]


@dataclass(frozen=True)
class LockedPlacement:
    subject_id: str
    faculty_id: str
    day: int
    slot: int
    room_id: str | None = None


def specialization_matches(faculty: FacultySpec, subject: SubjectSpec) -> bool:
    name = subject.name.lower()
    code = subject.code.lower()
    for tag in faculty.specialization:
        if tag in name or tag in code or subject.session_type in tag:
            return True
        if subject.is_mandatory and tag in MANDATORY_FACULTY_TAGS:
            return True
    return subject.is_mandatory and not faculty.specialization


def same_department(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return True
    return left.strip().lower() == right.strip().lower()


@dataclass(frozen=True)
class RunContext:
    """Frozen input snapshot shared read-only by every stage of one run."""

    subjects: tuple[SubjectSpec, ...]
    faculty: tuple[FacultySpec, ...]
    rooms: tuple[RoomSpec, ...]
    break_windows: tuple[BreakWindow, ...] = ()
    midday_break_slot: int = 3
    break_cells: frozenset[Cell] = frozenset()
    faculty_commitments: frozenset[tuple[str, int, int]] = frozenset()
    room_commitments: frozenset[tuple[str, int, int]] = frozenset()
    locked_sessions: tuple[LockedPlacement, ...] = ()
    subject_by_id: Mapping[str, SubjectSpec] = field(init=False, repr=False, compare=False)
    faculty_by_id: Mapping[str, FacultySpec] = field(init=False, repr=False, compare=False)
    room_by_id: Mapping[str, RoomSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "subject_by_id", MappingProxyType({item.id: item for item in self.subjects}))
        object.__setattr__(self, "faculty_by_id", MappingProxyType({item.id: item for item in self.faculty}))
        object.__setattr__(self, "room_by_id", MappingProxyType({item.id: item for item in self.rooms}))

    def subject(self, subject_id: str) -> SubjectSpec:
        return self.subject_by_id[subject_id]

    def faculty_member(self, faculty_id: str) -> FacultySpec:
        return self.faculty_by_id[faculty_id]

    def faculty_committed(self, faculty_id: str, day: int, slot: int) -> bool:
        return (faculty_id, day, slot) in self.faculty_commitments

    def room_committed(self, room_id: str, day: int, slot: int) -> bool:
        return (room_id, day, slot) in self.room_commitments

    def qualified_faculty(self, subject: SubjectSpec) -> list[FacultySpec]:
        return [member for member in self.faculty if specialization_matches(member, subject)]

    def department_faculty(self, department: str | None) -> list[FacultySpec]:
        return [member for member in self.faculty if same_department(member.department, department)]

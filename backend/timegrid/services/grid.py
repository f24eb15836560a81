from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from typing import Iterator

from timegrid.core.exceptions import SchedulerError
from timegrid.schemas.settings import DAY_VALUES, parse_time_to_minutes

Cell = tuple[int, int]


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


@dataclass(frozen=True)
class TimeSlot:
    index: int
    start: int
    end: int
    extended: bool = False

    @property
    def label(self) -> str:
        return f"{minutes_to_time(self.start)}-{minutes_to_time(self.end)}"

    def overlaps(self, start: int, end: int) -> bool:
        return max(self.start, start) < min(self.end, end)


def _slots(pairs: list[tuple[str, str]], *, offset: int = 0, extended: bool = False) -> tuple[TimeSlot, ...]:
    return tuple(
        TimeSlot(
            index=offset + index,
            start=parse_time_to_minutes(start),
            end=parse_time_to_minutes(end),
            extended=extended,
        )
        for index, (start, end) in enumerate(pairs)
    )


DAYS = DAY_VALUES
REGULAR_SLOTS = _slots(
    [
        ("09:00", "09:55"),
        ("09:55", "10:50"),
        ("11:05", "12:00"),
        ("12:00", "12:55"),
        ("13:55", "14:50"),
        ("14:50", "15:45"),
        ("15:55", "16:50"),
    ]
)
EXTENDED_SLOTS = _slots(
    [("17:00", "17:55"), ("18:00", "18:55"), ("19:00", "19:55")],
    offset=len(REGULAR_SLOTS),
    extended=True,
)
ALL_SLOTS = REGULAR_SLOTS + EXTENDED_SLOTS
REGULAR_SLOT_COUNT = len(REGULAR_SLOTS)
REGULAR_CELL_COUNT = len(DAYS) * REGULAR_SLOT_COUNT

SATURDAY = DAYS.index("SAT")
MANDATORY_WINDOW_SLOTS = frozenset({3, 4, 5, 6})
SATURDAY_CARVE_OUT_SLOTS = frozenset({0, 1})
DEFAULT_MIDDAY_BREAK_SLOT = 3

BLOCK_SESSION_TYPES = frozenset({"lab", "practical"})


def cell_key(day: int, slot: int) -> str:
    return f"{DAYS[day]}-{slot}"


def parse_cell_key(value: str) -> Cell:
    day, slot = value.split("-", 1)
    return DAYS.index(day), int(slot)


def describe_cell(day: int, slot: int) -> str:
    return f"{DAYS[day]} {ALL_SLOTS[slot].label}"


def in_mandatory_window(day: int, slot: int) -> bool:
    return day == SATURDAY and slot in MANDATORY_WINDOW_SLOTS


def placement_allowed(is_mandatory: bool, day: int, slot: int, *, allow_extended: bool = False) -> bool:
    """Whether a subject may occupy a cell under the mandatory-window rule.

    Mandatory subjects live only inside the Saturday window. Everyone else stays
    off Saturday except the morning carve-out, and extended end-of-day slots are
    opened only when explicitly allowed.
    """
    if slot >= REGULAR_SLOT_COUNT:
        return allow_extended and not is_mandatory and day != SATURDAY
    if is_mandatory:
        return in_mandatory_window(day, slot)
    if day == SATURDAY:
        return slot in SATURDAY_CARVE_OUT_SLOTS
    return True


@dataclass(frozen=True)
class SessionAssignment:
    subject_id: str
    faculty_id: str
    session_type: str
    is_mandatory: bool = False
    room_id: str | None = None
    locked: bool = False

    @property
    def is_block(self) -> bool:
        return self.session_type in BLOCK_SESSION_TYPES

    def with_room(self, room_id: str | None) -> "SessionAssignment":
        return replace(self, room_id=room_id)

    def with_faculty(self, faculty_id: str) -> "SessionAssignment":
        return replace(self, faculty_id=faculty_id)


class Grid:
    """Weekly grid for one section.

    Cells hold immutable ``SessionAssignment`` values, so ``copy`` is a shallow
    list copy and a copy can be mutated freely without touching the source.
    """

    __slots__ = ("_cells", "_breaks")

    def __init__(
        self,
        cells: list[SessionAssignment | None] | None = None,
        breaks: set[Cell] | None = None,
    ) -> None:
        size = len(DAYS) * len(ALL_SLOTS)
        self._cells: list[SessionAssignment | None] = list(cells) if cells is not None else [None] * size
        if len(self._cells) != size:
            raise SchedulerError("Grid cell count does not match the weekly layout", details={"cells": len(self._cells)})
        self._breaks: set[Cell] = set(breaks or ())

    @staticmethod
    def _index(day: int, slot: int) -> int:
        if not (0 <= day < len(DAYS) and 0 <= slot < len(ALL_SLOTS)):
            raise SchedulerError("Cell outside the weekly grid", details={"day": day, "slot": slot})
        return day * len(ALL_SLOTS) + slot

    def copy(self) -> "Grid":
        return Grid(self._cells, self._breaks)

    def adopt(self, other: "Grid") -> None:
        """Take over the state of a trial copy once it is known to be good."""
        self._cells = list(other._cells)
        self._breaks = set(other._breaks)

    def get(self, day: int, slot: int) -> SessionAssignment | None:
        return self._cells[self._index(day, slot)]

    def is_break(self, day: int, slot: int) -> bool:
        return (day, slot) in self._breaks

    def is_free(self, day: int, slot: int) -> bool:
        return self.get(day, slot) is None and not self.is_break(day, slot)

    def place(self, day: int, slot: int, assignment: SessionAssignment) -> None:
        index = self._index(day, slot)
        if self._cells[index] is not None:
            raise SchedulerError(
                "Cell already holds a session",
                details={"cell": cell_key(day, slot), "subject_id": assignment.subject_id},
            )
        self._cells[index] = assignment

    def replace(self, day: int, slot: int, assignment: SessionAssignment | None) -> SessionAssignment | None:
        index = self._index(day, slot)
        previous = self._cells[index]
        self._cells[index] = assignment
        return previous

    def remove(self, day: int, slot: int) -> SessionAssignment | None:
        return self.replace(day, slot, None)

    def mark_break(self, day: int, slot: int) -> None:
        if self.get(day, slot) is not None:
            raise SchedulerError("Cannot mark an occupied cell as a break", details={"cell": cell_key(day, slot)})
        self._breaks.add((day, slot))

    @property
    def break_cells(self) -> frozenset[Cell]:
        return frozenset(self._breaks)

    def occupied(self) -> Iterator[tuple[int, int, SessionAssignment]]:
        width = len(ALL_SLOTS)
        for index, assignment in enumerate(self._cells):
            if assignment is not None:
                yield index // width, index % width, assignment

    def day_cells(self, day: int) -> list[SessionAssignment | None]:
        start = self._index(day, 0)
        return self._cells[start : start + len(ALL_SLOTS)]

    def filled_count(self) -> int:
        return sum(1 for item in self._cells if item is not None)

    def opened_extended_count(self) -> int:
        return sum(1 for _, slot, _ in self.occupied() if slot >= REGULAR_SLOT_COUNT)

    def total_cells(self) -> int:
        return REGULAR_CELL_COUNT + self.opened_extended_count()

    def faculty_load(self) -> Counter[str]:
        return Counter(item.faculty_id for _, _, item in self.occupied())

    def faculty_day_load(self) -> Counter[tuple[str, int]]:
        return Counter((item.faculty_id, day) for day, _, item in self.occupied())

    def subject_load(self) -> Counter[str]:
        return Counter(item.subject_id for _, _, item in self.occupied())

    def day_load(self, day: int) -> int:
        return sum(1 for item in self.day_cells(day) if item is not None)

    def subject_runs(self, subject_id: str, day: int) -> list[tuple[int, int]]:
        """Contiguous ``(first_slot, last_slot)`` runs of a subject within a day."""
        runs: list[tuple[int, int]] = []
        start: int | None = None
        cells = self.day_cells(day)
        for slot, item in enumerate(cells):
            if item is not None and item.subject_id == subject_id:
                if start is None:
                    start = slot
            elif start is not None:
                runs.append((start, slot - 1))
                start = None
        if start is not None:
            runs.append((start, len(cells) - 1))
        return runs

    def signature(self) -> tuple:
        return (
            tuple(None if item is None else (item.subject_id, item.faculty_id, item.room_id) for item in self._cells),
            tuple(sorted(self._breaks)),
        )

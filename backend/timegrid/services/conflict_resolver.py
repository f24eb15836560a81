from __future__ import annotations

from dataclasses import dataclass, field
import logging

from timegrid.schemas.conflict import Conflict
from timegrid.schemas.generator import GenerationSettings
from timegrid.services.conflict_service import ConflictService
from timegrid.services.context import FacultySpec, RunContext, SubjectSpec, same_department, specialization_matches
from timegrid.services.grid import (
    ALL_SLOTS,
    DAYS,
    REGULAR_SLOT_COUNT,
    Cell,
    Grid,
    SessionAssignment,
    describe_cell,
    parse_cell_key,
    placement_allowed,
)
from timegrid.services.greedy_scheduler import subject_faculty
from timegrid.services.workload import fits_caps, has_headroom

logger = logging.getLogger(__name__)

ROOM_CAPACITY_RATIO = 0.8


@dataclass
class ResolutionOutcome:
    grid: Grid
    resolved: list[Conflict] = field(default_factory=list)
    unresolved: list[Conflict] = field(default_factory=list)
    attempts: int = 0
    aggressive_used: bool = False


@dataclass(frozen=True)
class MovableUnit:
    """A session or a whole lab run that must move between faculty together."""

    day: int
    slots: tuple[int, ...]
    assignment: SessionAssignment


def _same_run(candidate: SessionAssignment | None, item: SessionAssignment) -> bool:
    return (
        candidate is not None
        and not candidate.locked
        and candidate.subject_id == item.subject_id
        and candidate.faculty_id == item.faculty_id
    )


class ConflictResolver:
    def __init__(
        self,
        *,
        context: RunContext,
        settings: GenerationSettings,
        detector: ConflictService,
    ) -> None:
        self.context = context
        self.settings = settings
        self.detector = detector

    def resolve(self, grid: Grid, conflicts: list[Conflict]) -> ResolutionOutcome:
        working = grid.copy()
        initial = {item.id: item for item in conflicts}
        outstanding = list(conflicts)
        outcome = ResolutionOutcome(grid=working)

        while outstanding and outcome.attempts < self.settings.max_conflict_resolution_attempts:
            outcome.attempts += 1
            progress = self._run_iteration(working, outstanding, aggressive=False)
            if not progress:
                outcome.aggressive_used = True
                logger.info("Resolver escalating to aggressive pass outstanding=%s", len(outstanding))
                progress = self._run_iteration(working, outstanding, aggressive=True)
            outstanding = self.detector.detect_conflicts(working)
            if not progress:
                break

        current_ids = {item.id for item in outstanding}
        outcome.resolved = [item for conflict_id, item in initial.items() if conflict_id not in current_ids]
        outcome.unresolved = outstanding
        logger.info(
            "Resolver finished attempts=%s resolved=%s unresolved=%s aggressive=%s",
            outcome.attempts,
            len(outcome.resolved),
            len(outcome.unresolved),
            outcome.aggressive_used,
        )
        return outcome

    def _run_iteration(self, grid: Grid, outstanding: list[Conflict], *, aggressive: bool) -> bool:
        progress = False
        known_ids = {item.id for item in outstanding}
        live_ids = set(known_ids)
        for conflict in sorted(outstanding, key=lambda item: (-item.rank, item.id)):
            if conflict.id not in live_ids:
                continue
            if not self._repair(grid, conflict, aggressive=aggressive):
                continue
            progress = True
            fresh_ids = {item.id for item in self.detector.detect_conflicts(grid)}
            introduced = fresh_ids - known_ids
            if introduced:
                logger.debug("Repair of %s introduced %s new conflicts", conflict.id, len(introduced))
                break
            live_ids = fresh_ids
        return progress

    def _repair(self, grid: Grid, conflict: Conflict, *, aggressive: bool) -> bool:
        handlers = {
            "faculty": self._repair_faculty,
            "room": self._repair_room,
            "workload": self._repair_workload,
            "break": self._repair_break,
            "coverage": self._repair_coverage,
        }
        repaired = handlers[conflict.conflict_type](grid, conflict, aggressive=aggressive)
        if repaired:
            logger.debug("Repaired %s (%s) aggressive=%s", conflict.id, conflict.conflict_type, aggressive)
        return repaired

    # -- shared helpers -------------------------------------------------

    def _can_teach(self, member: FacultySpec, grid: Grid, day: int, slots: tuple[int, ...]) -> bool:
        if any(self.context.faculty_committed(member.id, day, slot) for slot in slots):
            return False
        return fits_caps(member, grid, day, extra_hours=len(slots))

    def _section_day_ok(self, grid: Grid, day: int, hours: int, *, aggressive: bool) -> bool:
        return aggressive or grid.day_load(day) + hours <= self.settings.max_daily_hours

    def _cell_open(self, grid: Grid, subject: SubjectSpec, day: int, slot: int, *, aggressive: bool) -> bool:
        return placement_allowed(subject.is_mandatory, day, slot, allow_extended=aggressive) and grid.is_free(day, slot)

    def _slot_range(self, aggressive: bool) -> range:
        return range(len(ALL_SLOTS) if aggressive else REGULAR_SLOT_COUNT)

    def _colleagues(
        self,
        subject: SubjectSpec,
        grid: Grid,
        *,
        department: str | None,
        exclude: str,
        aggressive: bool,
        require_headroom: bool,
    ) -> list[FacultySpec]:
        load = grid.faculty_load()
        members = []
        for member in self.context.faculty:
            if member.id == exclude or not same_department(member.department, department):
                continue
            if not aggressive and not specialization_matches(member, subject):
                continue
            if require_headroom and not aggressive and not has_headroom(load[member.id], member.max_hours_per_week):
                continue
            members.append(member)
        return sorted(members, key=lambda member: load[member.id])

    def _movable_units(self, grid: Grid, faculty_id: str, day: int | None = None) -> list[MovableUnit]:
        units: list[MovableUnit] = []
        for unit_day in range(len(DAYS)) if day is None else (day,):
            cells = grid.day_cells(unit_day)
            slot = 0
            while slot < len(cells):
                item = cells[slot]
                if item is None or item.faculty_id != faculty_id or item.locked:
                    slot += 1
                    continue
                end = slot
                if item.is_block:
                    while end + 1 < len(cells) and _same_run(cells[end + 1], item):
                        end += 1
                units.append(MovableUnit(day=unit_day, slots=tuple(range(slot, end + 1)), assignment=item))
                slot = end + 1
        # Singles first, then whole lab runs.
        return sorted(units, key=lambda unit: (len(unit.slots), unit.day, unit.slots[0]))

    def _unit_at(self, grid: Grid, day: int, slot: int) -> MovableUnit:
        cells = grid.day_cells(day)
        item = cells[slot]
        first = last = slot
        if item.is_block:
            while first > 0 and _same_run(cells[first - 1], item):
                first -= 1
            while last + 1 < len(cells) and _same_run(cells[last + 1], item):
                last += 1
        return MovableUnit(day=day, slots=tuple(range(first, last + 1)), assignment=item)

    def _reassign_unit(self, grid: Grid, unit: MovableUnit, faculty_id: str) -> None:
        for slot in unit.slots:
            grid.replace(unit.day, slot, grid.get(unit.day, slot).with_faculty(faculty_id))

    def _find_open_cell(
        self,
        grid: Grid,
        subject: SubjectSpec,
        member: FacultySpec,
        *,
        aggressive: bool,
        avoid_day: int | None = None,
    ) -> Cell | None:
        best: tuple[int, int, int] | None = None
        for day in range(len(DAYS)):
            if day == avoid_day or not self._section_day_ok(grid, day, 1, aggressive=aggressive):
                continue
            for slot in self._slot_range(aggressive):
                if not self._cell_open(grid, subject, day, slot, aggressive=aggressive):
                    continue
                if not self._can_teach(member, grid, day, (slot,)):
                    continue
                key = (grid.day_load(day), day, slot)
                if best is None or key < best:
                    best = key
        if best is None:
            return None
        return best[1], best[2]

    # -- type-specific repairs -----------------------------------------

    def _repair_faculty(self, grid: Grid, conflict: Conflict, *, aggressive: bool) -> bool:
        day, slot = parse_cell_key(conflict.affected_cells[0])
        item = grid.get(day, slot)
        if item is None or item.locked or not self.context.faculty_committed(item.faculty_id, day, slot):
            return False
        subject = self.context.subject(item.subject_id)
        current = self.context.faculty_by_id.get(item.faculty_id)
        unit = self._unit_at(grid, day, slot)
        for member in self._colleagues(
            subject,
            grid,
            department=current.department if current else subject.department,
            exclude=item.faculty_id,
            aggressive=aggressive,
            require_headroom=False,
        ):
            if self._can_teach(member, grid, day, unit.slots):
                self._reassign_unit(grid, unit, member.id)
                return True
        if aggressive and current is not None and not item.is_block:
            target = self._find_open_cell(grid, subject, current, aggressive=True)
            if target is not None:
                grid.remove(day, slot)
                grid.place(target[0], target[1], item.with_room(None))
                return True
        return False

    def _repair_room(self, grid: Grid, conflict: Conflict, *, aggressive: bool) -> bool:
        day, slot = parse_cell_key(conflict.affected_cells[0])
        item = grid.get(day, slot)
        if item is None or item.room_id is None:
            return False
        original = self.context.room_by_id.get(item.room_id)
        if original is None:
            return False
        minimum = 0 if aggressive else original.capacity * ROOM_CAPACITY_RATIO
        candidates = [
            room
            for room in self.context.rooms
            if room.id != original.id
            and room.capacity >= minimum
            and not self.context.room_committed(room.id, day, slot)
        ]
        if not candidates:
            return False
        chosen = min(candidates, key=lambda room: abs(room.capacity - original.capacity))
        grid.replace(day, slot, item.with_room(chosen.id))
        return True

    def _repair_workload(self, grid: Grid, conflict: Conflict, *, aggressive: bool) -> bool:
        member = self.context.faculty_by_id.get(conflict.affected_faculty[0]) if conflict.affected_faculty else None
        if member is None:
            return False
        if conflict.affected_cells:
            day = parse_cell_key(conflict.affected_cells[0])[0]
            excess = grid.faculty_day_load()[(member.id, day)] - member.max_hours_per_day
            units = self._movable_units(grid, member.id, day)
        else:
            day = None
            excess = grid.faculty_load()[member.id] - member.max_hours_per_week
            units = self._movable_units(grid, member.id)
        if excess <= 0:
            return False

        trial = grid.copy()
        for unit in units:
            if excess <= 0:
                break
            if self._transfer_unit(trial, unit, member, aggressive=aggressive):
                excess -= len(unit.slots)
            elif day is not None and not unit.assignment.is_block and self._move_to_other_day(trial, unit, member, aggressive=aggressive):
                excess -= 1
        if excess > 0:
            return False
        grid.adopt(trial)
        return True

    def _transfer_unit(self, grid: Grid, unit: MovableUnit, member: FacultySpec, *, aggressive: bool) -> bool:
        subject = self.context.subject(unit.assignment.subject_id)
        for colleague in self._colleagues(
            subject,
            grid,
            department=member.department,
            exclude=member.id,
            aggressive=aggressive,
            require_headroom=True,
        ):
            if self._can_teach(colleague, grid, unit.day, unit.slots):
                self._reassign_unit(grid, unit, colleague.id)
                return True
        return False

    def _move_to_other_day(self, grid: Grid, unit: MovableUnit, member: FacultySpec, *, aggressive: bool) -> bool:
        subject = self.context.subject(unit.assignment.subject_id)
        slot = unit.slots[0]
        grid.remove(unit.day, slot)
        target = self._find_open_cell(grid, subject, member, aggressive=aggressive, avoid_day=unit.day)
        if target is None:
            grid.place(unit.day, slot, unit.assignment)
            return False
        grid.place(target[0], target[1], unit.assignment.with_room(None))
        return True

    def _repair_break(self, grid: Grid, conflict: Conflict, *, aggressive: bool) -> bool:
        run = [parse_cell_key(key) for key in conflict.affected_cells]
        if not run:
            return False
        day = run[0][0]
        if aggressive:
            # Split the run right after the allowed number of classes.
            index = min(self.settings.mandatory_break_after_hours, len(run) - 1)
            slot = run[index][1]
        else:
            slot = self.context.midday_break_slot
        if grid.is_break(day, slot):
            return False
        occupant = grid.get(day, slot)
        if occupant is None:
            grid.mark_break(day, slot)
            logger.debug("Marked break at %s", describe_cell(day, slot))
            return True
        if occupant.locked or occupant.is_block:
            return False
        member = self.context.faculty_by_id.get(occupant.faculty_id)
        subject = self.context.subject(occupant.subject_id)
        trial = grid.copy()
        trial.remove(day, slot)
        trial.mark_break(day, slot)
        target = self._find_open_cell(trial, subject, member, aggressive=aggressive) if member else None
        if target is None:
            return False
        trial.place(target[0], target[1], occupant.with_room(None))
        grid.adopt(trial)
        logger.debug("Moved %s to %s to free the break at %s", subject.code, describe_cell(*target), describe_cell(day, slot))
        return True

    def _coverage_candidates(self, subject: SubjectSpec, grid: Grid, *, aggressive: bool) -> list[FacultySpec]:
        load = grid.faculty_load()
        current = subject_faculty(grid).get(subject.id)
        if aggressive:
            pool = self.context.department_faculty(subject.department)
        else:
            pool = self.context.qualified_faculty(subject) or [
                member
                for member in self.context.department_faculty(subject.department)
                if load[member.id] < member.max_hours_per_week
            ]
        return sorted(pool, key=lambda member: (member.id != current, load[member.id]))

    def _repair_coverage(self, grid: Grid, conflict: Conflict, *, aggressive: bool) -> bool:
        subject = self.context.subject_by_id.get(conflict.affected_subjects[0]) if conflict.affected_subjects else None
        if subject is None:
            return False
        if subject.is_block and conflict.affected_cells:
            return self._repair_split(grid, subject, conflict, aggressive=aggressive)
        missing = subject.hours_per_week - grid.subject_load()[subject.id]
        if missing <= 0:
            return False
        placed = 0
        for member in self._coverage_candidates(subject, grid, aggressive=aggressive):
            if placed >= missing:
                break
            if subject.is_block:
                placed += self._cover_block(grid, subject, member, missing - placed, aggressive=aggressive)
                continue
            while placed < missing:
                target = self._find_open_cell(grid, subject, member, aggressive=aggressive)
                if target is None:
                    break
                grid.place(
                    target[0],
                    target[1],
                    SessionAssignment(
                        subject_id=subject.id,
                        faculty_id=member.id,
                        session_type=subject.session_type,
                        is_mandatory=subject.is_mandatory,
                    ),
                )
                placed += 1
        return placed > 0

    def _repair_split(self, grid: Grid, subject: SubjectSpec, conflict: Conflict, *, aggressive: bool) -> bool:
        """Pull the stray runs of a day back next to its main run."""
        day = parse_cell_key(conflict.affected_cells[0])[0]
        runs = grid.subject_runs(subject.id, day)
        if len(runs) < 2:
            return False

        def anchor_key(run: tuple[int, int]) -> tuple[bool, int]:
            locked = any(grid.get(day, slot).locked for slot in range(run[0], run[1] + 1))
            return locked, run[1] - run[0]

        anchor = max(runs, key=anchor_key)
        trial = grid.copy()
        strays: list[SessionAssignment] = []
        for first, last in runs:
            if (first, last) == anchor:
                continue
            for slot in range(first, last + 1):
                if trial.get(day, slot).locked:
                    return False
                strays.append(trial.remove(day, slot))

        first, last = anchor
        slot_count = len(self._slot_range(aggressive))
        for item in strays:
            member = self.context.faculty_by_id.get(item.faculty_id)
            if member is None:
                return False
            for slot in (last + 1, first - 1):
                if 0 <= slot < slot_count and self._cell_open(trial, subject, day, slot, aggressive=aggressive) and self._can_teach(
                    member, trial, day, (slot,)
                ):
                    trial.place(day, slot, item.with_room(None))
                    first, last = min(first, slot), max(last, slot)
                    break
            else:
                return False
        grid.adopt(trial)
        return True

    def _cover_block(self, grid: Grid, subject: SubjectSpec, member: FacultySpec, missing: int, *, aggressive: bool) -> int:
        assignment = SessionAssignment(
            subject_id=subject.id,
            faculty_id=member.id,
            session_type=subject.session_type,
            is_mandatory=subject.is_mandatory,
        )
        slot_count = len(self._slot_range(aggressive))
        for length in range(min(missing, self.settings.lab_block_size), 0, -1):
            for day in range(len(DAYS)):
                if grid.subject_runs(subject.id, day) or not self._section_day_ok(grid, day, length, aggressive=aggressive):
                    continue
                for start in range(0, slot_count - length + 1):
                    slots = tuple(range(start, start + length))
                    if all(self._cell_open(grid, subject, day, slot, aggressive=aggressive) for slot in slots) and self._can_teach(
                        member, grid, day, slots
                    ):
                        for slot in slots:
                            grid.place(day, slot, assignment)
                        return length

        # Extend an existing run by one adjacent cell; it stays a single run.
        for day in range(len(DAYS)):
            runs = grid.subject_runs(subject.id, day)
            if len(runs) != 1 or not self._section_day_ok(grid, day, 1, aggressive=aggressive):
                continue
            first, last = runs[0]
            owner = grid.get(day, first)
            if owner is None or owner.faculty_id != member.id:
                continue
            for slot in (last + 1, first - 1):
                if 0 <= slot < slot_count and self._cell_open(grid, subject, day, slot, aggressive=aggressive) and self._can_teach(
                    member, grid, day, (slot,)
                ):
                    grid.place(day, slot, assignment)
                    return 1
        return 0

from __future__ import annotations

from collections import defaultdict
import logging
from typing import Dict, List

from timegrid.schemas.conflict import Conflict, conflict_id
from timegrid.schemas.generator import GenerationSettings
from timegrid.services.context import RunContext, SubjectSpec
from timegrid.services.grid import ALL_SLOTS, DAYS, Grid, cell_key, describe_cell

logger = logging.getLogger(__name__)


def coverage_conflict(subject: SubjectSpec, grid: Grid, *, reason: str | None = None) -> Conflict:
    scheduled = grid.subject_load()[subject.id]
    percent = round(scheduled / subject.hours_per_week * 100) if subject.hours_per_week else 100
    if subject.is_mandatory:
        description = (
            f"CRITICAL: Mandatory subject {subject.name} only {percent}% scheduled "
            f"({scheduled}/{subject.hours_per_week} hours)"
        )
    else:
        description = f"Subject {subject.name} is under-scheduled ({scheduled}/{subject.hours_per_week} hours)"
    if reason:
        description = f"{description}: {reason}"
    faculty_ids = sorted({item.faculty_id for _, _, item in grid.occupied() if item.subject_id == subject.id})
    return Conflict(
        id=conflict_id("coverage", subject.id),
        conflict_type="coverage",
        severity="medium",
        description=description,
        suggested_resolution="Schedule the remaining hours in free compatible slots",
        affected_subjects=[subject.id],
        affected_faculty=faculty_ids,
    )


def merge_conflicts(primary: List[Conflict], secondary: List[Conflict]) -> List[Conflict]:
    """Union by conflict id, keeping the primary record when both report one."""
    merged: Dict[str, Conflict] = {item.id: item for item in secondary}
    for item in primary:
        merged[item.id] = item
    return sorted(merged.values(), key=lambda item: (-item.rank, item.conflict_type, item.id))


class ConflictService:
    def __init__(self, context: RunContext, settings: GenerationSettings):
        self.context = context
        self.settings = settings

    def detect_conflicts(self, grid: Grid) -> List[Conflict]:
        conflicts: List[Conflict] = []
        conflicts.extend(self._faculty_conflicts(grid))
        if self.settings.enable_room_assignment:
            conflicts.extend(self._room_conflicts(grid))
        conflicts.extend(self._workload_conflicts(grid))
        if self.settings.enable_break_management:
            conflicts.extend(self._break_conflicts(grid))
        conflicts.extend(self._contiguity_conflicts(grid))
        conflicts.extend(self._coverage_conflicts(grid))
        logger.debug("Detected %s conflicts", len(conflicts))
        return conflicts

    def _subject_name(self, subject_id: str) -> str:
        subject = self.context.subject_by_id.get(subject_id)
        return subject.name if subject else subject_id

    def _faculty_name(self, faculty_id: str) -> str:
        member = self.context.faculty_by_id.get(faculty_id)
        return member.name if member else faculty_id

    def _faculty_conflicts(self, grid: Grid) -> List[Conflict]:
        conflicts: List[Conflict] = []
        for day, slot, item in grid.occupied():
            if not self.context.faculty_committed(item.faculty_id, day, slot):
                continue
            key = cell_key(day, slot)
            conflicts.append(Conflict(
                id=conflict_id("faculty", item.faculty_id, key),
                conflict_type="faculty",
                severity="critical",
                description=(
                    f"Faculty {self._faculty_name(item.faculty_id)} is double-booked on {describe_cell(day, slot)}: "
                    f"{self._subject_name(item.subject_id)} overlaps another commitment"
                ),
                suggested_resolution="Assign an alternate faculty member for this session",
                affected_subjects=[item.subject_id],
                affected_faculty=[item.faculty_id],
                affected_cells=[key],
            ))
        return conflicts

    def _room_conflicts(self, grid: Grid) -> List[Conflict]:
        conflicts: List[Conflict] = []
        for day, slot, item in grid.occupied():
            if item.room_id is None or not self.context.room_committed(item.room_id, day, slot):
                continue
            room = self.context.room_by_id.get(item.room_id)
            key = cell_key(day, slot)
            conflicts.append(Conflict(
                id=conflict_id("room", item.room_id, key),
                conflict_type="room",
                severity="high",
                description=(
                    f"Room {room.name if room else item.room_id} is double-booked on {describe_cell(day, slot)} "
                    f"for {self._subject_name(item.subject_id)}"
                ),
                suggested_resolution="Move the session to an alternate room with similar capacity",
                affected_subjects=[item.subject_id],
                affected_faculty=[item.faculty_id],
                affected_cells=[key],
            ))
        return conflicts

    def _workload_conflicts(self, grid: Grid) -> List[Conflict]:
        conflicts: List[Conflict] = []
        subjects_by_faculty: Dict[str, set] = defaultdict(set)
        for _, _, item in grid.occupied():
            subjects_by_faculty[item.faculty_id].add(item.subject_id)

        weekly = grid.faculty_load()
        daily = grid.faculty_day_load()
        for member in self.context.faculty:
            hours = weekly[member.id]
            if hours > member.max_hours_per_week:
                conflicts.append(Conflict(
                    id=conflict_id("workload", "weekly", member.id),
                    conflict_type="workload",
                    severity="high",
                    description=(
                        f"Faculty {member.name} exceeds weekly workload limit "
                        f"({hours}/{member.max_hours_per_week} hours)"
                    ),
                    suggested_resolution="Reduce faculty workload or redistribute assignments",
                    affected_subjects=sorted(subjects_by_faculty[member.id]),
                    affected_faculty=[member.id],
                ))
            for day in range(len(DAYS)):
                day_hours = daily[(member.id, day)]
                if day_hours <= member.max_hours_per_day:
                    continue
                cells = [
                    cell_key(day, slot)
                    for slot, item in enumerate(grid.day_cells(day))
                    if item is not None and item.faculty_id == member.id
                ]
                conflicts.append(Conflict(
                    id=conflict_id("workload", "daily", member.id, DAYS[day]),
                    conflict_type="workload",
                    severity="medium",
                    description=(
                        f"Faculty {member.name} exceeds daily workload limit on {DAYS[day]} "
                        f"({day_hours}/{member.max_hours_per_day} hours)"
                    ),
                    suggested_resolution="Move sessions to another day or redistribute them to a colleague",
                    affected_subjects=sorted(subjects_by_faculty[member.id]),
                    affected_faculty=[member.id],
                    affected_cells=cells,
                ))
        return conflicts

    def _break_conflicts(self, grid: Grid) -> List[Conflict]:
        limit = self.settings.mandatory_break_after_hours
        conflicts: List[Conflict] = []
        for day in range(len(DAYS)):
            longest: list[int] = []
            run: list[int] = []
            for slot in range(len(ALL_SLOTS)):
                if grid.get(day, slot) is not None and not grid.is_break(day, slot):
                    run.append(slot)
                    if len(run) > len(longest):
                        longest = list(run)
                else:
                    run = []
            if len(longest) <= limit:
                continue
            items = [grid.get(day, slot) for slot in longest]
            conflicts.append(Conflict(
                id=conflict_id("break", DAYS[day]),
                conflict_type="break",
                severity="medium",
                description=f"{len(longest)} consecutive classes without a break on {DAYS[day]} (limit {limit})",
                suggested_resolution=f"Insert the midday break on {DAYS[day]}",
                affected_subjects=sorted({item.subject_id for item in items}),
                affected_faculty=sorted({item.faculty_id for item in items}),
                affected_cells=[cell_key(day, slot) for slot in longest],
            ))
        return conflicts

    def _contiguity_conflicts(self, grid: Grid) -> List[Conflict]:
        conflicts: List[Conflict] = []
        for subject in self.context.subjects:
            if not subject.is_block:
                continue
            for day in range(len(DAYS)):
                runs = grid.subject_runs(subject.id, day)
                if len(runs) < 2:
                    continue
                slots = [slot for first, last in runs for slot in range(first, last + 1)]
                conflicts.append(Conflict(
                    id=conflict_id("coverage", "split", subject.id, DAYS[day]),
                    conflict_type="coverage",
                    severity="high",
                    description=f"{subject.name} is split into {len(runs)} separate runs on {DAYS[day]}",
                    suggested_resolution="Schedule the day's hours for this subject as one contiguous block",
                    affected_subjects=[subject.id],
                    affected_faculty=sorted({grid.get(day, slot).faculty_id for slot in slots}),
                    affected_cells=[cell_key(day, slot) for slot in slots],
                ))
        return conflicts

    def _coverage_conflicts(self, grid: Grid) -> List[Conflict]:
        scheduled = grid.subject_load()
        return [
            coverage_conflict(subject, grid)
            for subject in self.context.subjects
            if scheduled[subject.id] < subject.hours_per_week
        ]

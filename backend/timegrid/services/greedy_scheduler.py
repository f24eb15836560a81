from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import logging
import random

from timegrid.schemas.conflict import Conflict
from timegrid.schemas.generator import GenerationSettings
from timegrid.services.conflict_service import coverage_conflict
from timegrid.services.context import FacultySpec, RunContext, SubjectSpec
from timegrid.services.grid import (
    DAYS,
    REGULAR_SLOT_COUNT,
    Grid,
    SessionAssignment,
    in_mandatory_window,
    placement_allowed,
)
from timegrid.services.workload import fits_caps

logger = logging.getLogger(__name__)

TYPE_PRIORITY = {"lab": 1, "practical": 2, "tutorial": 3, "theory": 4}
SINGLE_PERIOD_ATTEMPTS = 3
BASE_SLOT_SCORE = 50
MANDATORY_WINDOW_BONUS = 10_000
LATE_LAB_PENALTY = 30
CONSECUTIVE_THEORY_PENALTY = 40
DAY_LOAD_PENALTY = 5
EARLY_SLOT_BONUS = 3
HEAVY_SUBJECT_HOURS = 4


def preference_penalty(grid: Grid, day: int, slot: int, assignment: SessionAssignment, settings: GenerationSettings) -> int:
    """Soft-preference penalty for holding ``assignment`` at a cell.

    The cell itself is ignored when looking at neighbours, so the same value is
    produced whether the session is already placed there or only proposed.
    """
    penalty = 0
    if assignment.is_mandatory:
        return penalty
    if settings.prioritize_morning_labs and assignment.is_block and slot >= 4:
        penalty += LATE_LAB_PENALTY
    if settings.avoid_consecutive_theory and assignment.session_type == "theory":
        for neighbour in (slot - 1, slot + 1):
            if 0 <= neighbour < REGULAR_SLOT_COUNT:
                other = grid.get(day, neighbour)
                if other is not None and other.session_type == "theory":
                    penalty += CONSECUTIVE_THEORY_PENALTY
    return penalty


@dataclass
class ScheduleOutcome:
    grid: Grid
    conflicts: list[Conflict] = field(default_factory=list)
    placed_hours: int = 0
    attempts: int = 0
    passes: int = 0


class GreedyScheduler:
    """Builds the initial grid one subject at a time, most constrained first."""

    def __init__(self, *, context: RunContext, settings: GenerationSettings, rng: random.Random) -> None:
        self.context = context
        self.settings = settings
        self.random = rng

    def prioritized_subjects(self) -> list[SubjectSpec]:
        shuffled = list(self.context.subjects)
        self.random.shuffle(shuffled)
        tiebreak = {subject.id: index for index, subject in enumerate(shuffled)}

        def sort_key(subject: SubjectSpec) -> tuple:
            return (
                0 if subject.is_mandatory else 1,
                subject.mandatory_rank if subject.is_mandatory else 0,
                TYPE_PRIORITY.get(subject.session_type, 5),
                -subject.hours_per_week,
                tiebreak[subject.id],
            )

        return sorted(self.context.subjects, key=sort_key)

    def eligible_faculty(self, subject: SubjectSpec, grid: Grid) -> list[FacultySpec]:
        qualified = self.context.qualified_faculty(subject)
        if qualified:
            return qualified
        load = grid.faculty_load()
        return [
            member
            for member in self.context.department_faculty(subject.department)
            if load[member.id] < member.max_hours_per_week
        ]

    def select_faculty(self, subject: SubjectSpec, grid: Grid) -> FacultySpec | None:
        """Lowest current load among the eligible, members still under their weekly cap first."""
        eligible = self.eligible_faculty(subject, grid)
        if not eligible:
            return None
        load = grid.faculty_load()
        order = {member.id: index for index, member in enumerate(self.context.faculty)}
        return min(
            eligible,
            key=lambda member: (
                load[member.id] >= member.max_hours_per_week,
                load[member.id],
                order[member.id],
            ),
        )

    def faculty_available(self, faculty_id: str, day: int, slot: int) -> bool:
        return not self.context.faculty_committed(faculty_id, day, slot)

    def run(self) -> ScheduleOutcome:
        grid = Grid(breaks=set(self.context.break_cells))
        outcome = ScheduleOutcome(grid=grid)
        self._place_locked(grid)

        ordered = self.prioritized_subjects()
        remaining = {subject.id: subject.hours_per_week - grid.subject_load()[subject.id] for subject in ordered}
        skipped: dict[str, str] = {}
        budget = self.settings.scheduler_max_attempts

        while outcome.attempts < budget:
            outcome.passes += 1
            placed_this_pass = 0
            for subject in ordered:
                if remaining[subject.id] <= 0 or subject.id in skipped:
                    continue
                if outcome.attempts >= budget:
                    break
                outcome.attempts += 1

                member = self.select_faculty(subject, grid)
                if member is None:
                    skipped[subject.id] = "no eligible faculty"
                    logger.warning("No eligible faculty for subject %s (%s)", subject.code, subject.id)
                    continue

                if subject.is_block:
                    placed = self._place_block(grid, subject, member, remaining[subject.id])
                else:
                    placed = self._place_single_periods(grid, subject, member, remaining[subject.id])
                remaining[subject.id] -= placed
                placed_this_pass += placed
            outcome.placed_hours += placed_this_pass
            if placed_this_pass == 0:
                break

        for subject in ordered:
            if remaining[subject.id] > 0:
                outcome.conflicts.append(coverage_conflict(subject, grid, reason=skipped.get(subject.id)))

        logger.info(
            "Greedy scheduling placed=%s passes=%s attempts=%s unplaced_subjects=%s",
            outcome.placed_hours,
            outcome.passes,
            outcome.attempts,
            len(outcome.conflicts),
        )
        return outcome

    def _place_locked(self, grid: Grid) -> None:
        for lock in self.context.locked_sessions:
            subject = self.context.subject(lock.subject_id)
            grid.place(
                lock.day,
                lock.slot,
                SessionAssignment(
                    subject_id=subject.id,
                    faculty_id=lock.faculty_id,
                    session_type=subject.session_type,
                    is_mandatory=subject.is_mandatory,
                    room_id=lock.room_id,
                    locked=True,
                ),
            )

    def _new_assignment(self, subject: SubjectSpec, member: FacultySpec) -> SessionAssignment:
        return SessionAssignment(
            subject_id=subject.id,
            faculty_id=member.id,
            session_type=subject.session_type,
            is_mandatory=subject.is_mandatory,
        )

    def _place_block(self, grid: Grid, subject: SubjectSpec, member: FacultySpec, remaining: int) -> int:
        length = min(remaining, self.settings.lab_block_size)
        for day in range(len(DAYS)):
            if grid.subject_runs(subject.id, day):
                continue
            if grid.day_load(day) + length > self.settings.max_daily_hours:
                continue
            if not fits_caps(member, grid, day, extra_hours=length):
                continue
            for start in range(0, REGULAR_SLOT_COUNT - length + 1):
                slots = range(start, start + length)
                if all(
                    placement_allowed(subject.is_mandatory, day, slot)
                    and grid.is_free(day, slot)
                    and self.faculty_available(member.id, day, slot)
                    for slot in slots
                ):
                    assignment = self._new_assignment(subject, member)
                    for slot in slots:
                        grid.place(day, slot, assignment)
                    logger.debug("Placed %s block day=%s start=%s length=%s", subject.code, DAYS[day], start, length)
                    return length
        return 0

    def _candidate_score(self, grid: Grid, subject: SubjectSpec, assignment: SessionAssignment, day: int, slot: int) -> int:
        score = BASE_SLOT_SCORE
        if subject.is_mandatory and in_mandatory_window(day, slot):
            score += MANDATORY_WINDOW_BONUS
        if not subject.is_mandatory:
            score -= preference_penalty(grid, day, slot, assignment, self.settings)
            score -= grid.day_load(day) * DAY_LOAD_PENALTY
        if subject.hours_per_week >= HEAVY_SUBJECT_HOURS or subject.is_mandatory:
            score += (REGULAR_SLOT_COUNT - slot) * EARLY_SLOT_BONUS
        return score

    def _place_single_periods(self, grid: Grid, subject: SubjectSpec, member: FacultySpec, remaining: int) -> int:
        placed = 0
        assignment = self._new_assignment(subject, member)
        for _attempt in range(min(remaining, SINGLE_PERIOD_ATTEMPTS)):
            best: tuple[int, int, int] | None = None
            for day in range(len(DAYS)):
                if grid.day_load(day) >= self.settings.max_daily_hours:
                    continue
                if not fits_caps(member, grid, day):
                    continue
                for slot in range(REGULAR_SLOT_COUNT):
                    if not placement_allowed(subject.is_mandatory, day, slot):
                        continue
                    if not grid.is_free(day, slot) or not self.faculty_available(member.id, day, slot):
                        continue
                    score = self._candidate_score(grid, subject, assignment, day, slot)
                    if best is None or score > best[0]:
                        best = (score, day, slot)
            if best is None:
                break
            _, day, slot = best
            grid.place(day, slot, assignment)
            placed += 1
        return placed


def subject_faculty(grid: Grid) -> dict[str, str]:
    """Most frequent faculty per subject in a grid."""
    counts: dict[str, Counter] = {}
    for _, _, item in grid.occupied():
        counts.setdefault(item.subject_id, Counter())[item.faculty_id] += 1
    return {subject_id: counter.most_common(1)[0][0] for subject_id, counter in counts.items()}

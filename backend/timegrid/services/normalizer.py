from __future__ import annotations

from dataclasses import dataclass, field
import logging

from timegrid.schemas.conflict import Conflict, conflict_id
from timegrid.schemas.generator import GenerateTimetableRequest, GenerationSettings
from timegrid.schemas.settings import DEFAULT_BREAK_TIMES, parse_time_to_minutes
from timegrid.schemas.timetable import RoomPayload
from timegrid.services.context import (
    BreakWindow,
    FacultySpec,
    LockedPlacement,
    RoomSpec,
    RunContext,
    SubjectSpec,
)
from timegrid.services.grid import (
    ALL_SLOTS,
    DAYS,
    DEFAULT_MIDDAY_BREAK_SLOT,
    REGULAR_SLOTS,
    Cell,
    cell_key,
    in_mandatory_window,
    placement_allowed,
)
from timegrid.services.mandatory import MANDATORY_KEYWORDS, mandatory_rank
from timegrid.services.workload import constrained_daily_cap, constrained_weekly_cap

logger = logging.getLogger(__name__)

DEFAULT_ROOMS = [
    RoomPayload(id="room-lab-101", name="Lab 101", capacity=30, equipment=["computers", "projector"], room_type="lab"),
    RoomPayload(id="room-theory-201", name="Theory 201", capacity=60, equipment=["projector"], room_type="theory"),
    RoomPayload(id="room-lab-301", name="Lab 301", capacity=25, equipment=["computers", "equipment"], room_type="lab"),
]


@dataclass
class NormalizationResult:
    context: RunContext | None
    issues: list[Conflict] = field(default_factory=list)
    fatal: Conflict | None = None


def _dedupe(records: list, label: str) -> list:
    seen: set[str] = set()
    unique = []
    for record in records:
        if record.id in seen:
            logger.warning("Dropping duplicate %s id=%s", label, record.id)
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


def _fatal_conflict(missing: str) -> Conflict:
    return Conflict(
        id=conflict_id("coverage", "empty", missing),
        conflict_type="coverage",
        severity="critical",
        description=f"No {missing} available for scheduling",
        suggested_resolution=f"Add {missing} records before generating a timetable",
    )


def _build_break_windows(request: GenerateTimetableRequest, settings: GenerationSettings) -> tuple[BreakWindow, ...]:
    entries = request.break_times or DEFAULT_BREAK_TIMES
    windows: list[BreakWindow] = []
    for entry in entries:
        if (entry.duration or 0) < settings.min_break_duration:
            logger.warning(
                "Dropping break %s: duration %s below minimum %s",
                entry.name,
                entry.duration,
                settings.min_break_duration,
            )
            continue
        start = parse_time_to_minutes(entry.start_time)
        end = parse_time_to_minutes(entry.end_time)
        slots = tuple(slot.index for slot in REGULAR_SLOTS if slot.overlaps(start, end))
        windows.append(
            BreakWindow(
                name=entry.name,
                break_type=entry.break_type,
                start=start,
                end=end,
                duration=entry.duration or end - start,
                slots=slots,
            )
        )
    return tuple(windows)


def _midday_break_slot(windows: tuple[BreakWindow, ...]) -> int:
    for window in windows:
        if window.break_type == "lunch" and window.slots:
            return window.slots[0]
    return DEFAULT_MIDDAY_BREAK_SLOT


def _reserved_break_cells(windows: tuple[BreakWindow, ...], settings: GenerationSettings) -> frozenset[Cell]:
    """Cells held back from scheduling by short and custom breaks.

    Lunch only picks the midday slot, which the resolver marks per day when a
    run gets too long. The mandatory window is never reserved.
    """
    if not settings.enable_break_management:
        return frozenset()
    cells = set()
    for window in windows:
        if window.break_type == "lunch":
            continue
        for day in range(len(DAYS)):
            cells.update((day, slot) for slot in window.slots if not in_mandatory_window(day, slot))
    return frozenset(cells)


def _splits_block_run(lock_day: int, lock_slot: int, placed: list[LockedPlacement]) -> bool:
    slots = [item.slot for item in placed if item.day == lock_day]
    if not slots:
        return False
    return lock_slot not in (min(slots) - 1, max(slots) + 1)


def normalize_request(request: GenerateTimetableRequest, settings: GenerationSettings) -> NormalizationResult:
    """Validate and index the request records into a frozen ``RunContext``.

    Bad individual records are dropped and logged; bad locked sessions are
    reported as low-severity coverage conflicts. Only an empty subject or
    faculty collection is fatal.
    """
    subjects = _dedupe(request.subjects, "subject")
    faculty = _dedupe(request.faculty, "faculty")
    if not subjects:
        return NormalizationResult(context=None, fatal=_fatal_conflict("subjects"))
    if not faculty:
        return NormalizationResult(context=None, fatal=_fatal_conflict("faculty"))

    subject_specs = []
    for item in subjects:
        rank = mandatory_rank(item.name, item.code)
        is_mandatory = item.is_mandatory or rank is not None
        if is_mandatory and rank is None:
            rank = len(MANDATORY_KEYWORDS)
        subject_specs.append(
            SubjectSpec(
                id=item.id,
                code=item.code.strip(),
                name=item.name.strip(),
                session_type=item.type,
                hours_per_week=item.hours_per_week,
                is_mandatory=is_mandatory,
                mandatory_rank=rank,
                department=item.department,
                year=item.year,
            )
        )

    faculty_specs = []
    for item in faculty:
        weekly = constrained_weekly_cap(item.max_hours_per_week, settings.max_faculty_hours_per_week)
        faculty_specs.append(
            FacultySpec(
                id=item.id,
                name=item.name.strip(),
                specialization=frozenset(tag.strip().lower() for tag in item.specialization if tag.strip()),
                department=item.department,
                max_hours_per_week=weekly,
                max_hours_per_day=constrained_daily_cap(item.max_hours_per_day, settings.max_faculty_hours_per_day, weekly),
            )
        )

    room_records = _dedupe(request.rooms, "room")
    if not room_records and settings.use_default_rooms:
        room_records = list(DEFAULT_ROOMS)
    room_specs = tuple(
        RoomSpec(
            id=item.id,
            name=item.name.strip(),
            capacity=item.capacity,
            equipment=frozenset(tag.strip().lower() for tag in item.equipment if tag.strip()),
            room_type=item.room_type,
        )
        for item in room_records
    )

    faculty_ids = {item.id for item in faculty_specs}
    room_ids = {item.id for item in room_specs}
    faculty_commitments: set[tuple[str, int, int]] = set()
    room_commitments: set[tuple[str, int, int]] = set()
    for commitment in request.commitments:
        day = DAYS.index(commitment.day)
        if commitment.slot >= len(ALL_SLOTS):
            logger.warning("Dropping commitment outside the grid day=%s slot=%s", commitment.day, commitment.slot)
            continue
        if commitment.faculty_id is not None:
            if commitment.faculty_id not in faculty_ids:
                logger.warning("Dropping commitment for unknown faculty_id=%s", commitment.faculty_id)
                continue
            faculty_commitments.add((commitment.faculty_id, day, commitment.slot))
        elif commitment.room_id is not None:
            if commitment.room_id not in room_ids:
                logger.warning("Dropping commitment for unknown room_id=%s", commitment.room_id)
                continue
            room_commitments.add((commitment.room_id, day, commitment.slot))

    windows = _build_break_windows(request, settings)
    reserved = _reserved_break_cells(windows, settings)

    subject_by_id = {item.id: item for item in subject_specs}
    issues: list[Conflict] = []
    locked: list[LockedPlacement] = []
    taken: set[tuple[int, int]] = set()
    for lock in request.locked_sessions:
        day = DAYS.index(lock.day)
        subject = subject_by_id.get(lock.subject_id)
        reason: str | None = None
        if subject is None:
            reason = f"unknown subject {lock.subject_id}"
        elif lock.faculty_id not in faculty_ids:
            reason = f"unknown faculty {lock.faculty_id}"
        elif lock.slot >= len(REGULAR_SLOTS):
            reason = "locks must use regular slots"
        elif not placement_allowed(subject.is_mandatory, day, lock.slot):
            reason = "cell is outside the subject's placement window"
        elif (day, lock.slot) in taken:
            reason = "cell already locked by another session"
        elif (day, lock.slot) in reserved:
            reason = "cell is reserved for a break"
        elif subject.is_block and _splits_block_run(
            day, lock.slot, [item for item in locked if item.subject_id == subject.id]
        ):
            reason = f"it would split the {subject.session_type} run on {lock.day}"
        elif lock.room_id is not None and lock.room_id not in room_ids:
            reason = f"unknown room {lock.room_id}"
        if reason is not None:
            logger.warning("Ignoring locked session subject_id=%s: %s", lock.subject_id, reason)
            issues.append(
                Conflict(
                    id=conflict_id("coverage", "lock", lock.subject_id, lock.day, str(lock.slot)),
                    conflict_type="coverage",
                    severity="low",
                    description=f"Locked session for {lock.subject_id} on {lock.day} slot {lock.slot + 1} ignored: {reason}",
                    suggested_resolution="Fix or remove the locked session",
                    affected_subjects=[lock.subject_id],
                    affected_faculty=[lock.faculty_id] if lock.faculty_id in faculty_ids else [],
                    affected_cells=[cell_key(day, lock.slot)],
                )
            )
            continue
        taken.add((day, lock.slot))
        locked.append(
            LockedPlacement(
                subject_id=lock.subject_id,
                faculty_id=lock.faculty_id,
                day=day,
                slot=lock.slot,
                room_id=lock.room_id,
            )
        )

    context = RunContext(
        subjects=tuple(subject_specs),
        faculty=tuple(faculty_specs),
        rooms=room_specs,
        break_windows=windows,
        midday_break_slot=_midday_break_slot(windows),
        break_cells=reserved,
        faculty_commitments=frozenset(faculty_commitments),
        room_commitments=frozenset(room_commitments),
        locked_sessions=tuple(locked),
    )
    logger.info(
        "Normalized run subjects=%s faculty=%s rooms=%s commitments=%s locks=%s",
        len(context.subjects),
        len(context.faculty),
        len(context.rooms),
        len(faculty_commitments) + len(room_commitments),
        len(locked),
    )
    return NormalizationResult(context=context, issues=issues)

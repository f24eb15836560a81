from __future__ import annotations

from collections import Counter

from timegrid.schemas.generator import GenerationSettings, GenerationStatisticsOut
from timegrid.services.context import RunContext
from timegrid.services.grid import REGULAR_CELL_COUNT, Grid
from timegrid.services.workload import utilization_percent


def resolution_rate(detected: int, resolved: int) -> float:
    if detected <= 0:
        return 100.0
    return round(min(resolved, detected) / detected * 100, 2)


def build_statistics(
    context: RunContext,
    grid: Grid,
    settings: GenerationSettings,
    *,
    detected: int,
    resolved: int,
) -> GenerationStatisticsOut:
    """Summarise occupancy, workload and coverage of a finished grid."""
    total = grid.total_cells()
    filled = grid.filled_count()
    mandatory_cells = 0
    unassigned_rooms = 0
    room_usage: Counter[str] = Counter()
    for _, _, item in grid.occupied():
        if item.is_mandatory:
            mandatory_cells += 1
        if item.room_id is None:
            unassigned_rooms += 1
        else:
            room_usage[item.room_id] += 1

    faculty_utilization: dict[str, float] = {}
    subject_coverage: dict[str, float] = {}
    room_utilization: dict[str, float] = {}
    load = grid.faculty_load()
    for member in context.faculty:
        faculty_utilization[member.id] = utilization_percent(load[member.id], member.max_hours_per_week)
    scheduled = grid.subject_load()
    for subject in context.subjects:
        if subject.hours_per_week <= 0:
            subject_coverage[subject.id] = 100.0
        else:
            subject_coverage[subject.id] = round(scheduled[subject.id] / subject.hours_per_week * 100, 2)
    if settings.enable_room_assignment:
        for room in context.rooms:
            room_utilization[room.id] = round(room_usage[room.id] / REGULAR_CELL_COUNT * 100, 2)
    else:
        unassigned_rooms = 0

    return GenerationStatisticsOut(
        total_cells=total,
        filled_cells=filled,
        efficiency=round(filled / total * 100, 2) if total else 0.0,
        mandatory_cells=mandatory_cells,
        unassigned_room_cells=unassigned_rooms,
        faculty_utilization=faculty_utilization,
        subject_coverage=subject_coverage,
        room_utilization=room_utilization,
        conflicts_detected=detected,
        conflicts_resolved=resolved,
        conflict_resolution_rate=resolution_rate(detected, resolved),
    )

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import logging

from timegrid.schemas.generator import GenerationSettings
from timegrid.schemas.timetable import RoomAssignmentOut
from timegrid.services.context import RoomSpec, RunContext
from timegrid.services.grid import ALL_SLOTS, DAYS, Grid, SessionAssignment

logger = logging.getLogger(__name__)

REQUIRED_CAPACITY = {"lab": 30, "practical": 30, "theory": 60}
DEFAULT_REQUIRED_CAPACITY = 40
REQUIRED_EQUIPMENT = {
    "lab": frozenset({"computers", "projector"}),
    "practical": frozenset({"equipment"}),
}
DEFAULT_REQUIRED_EQUIPMENT = frozenset({"projector"})


def required_capacity(session_type: str) -> int:
    return REQUIRED_CAPACITY.get(session_type, DEFAULT_REQUIRED_CAPACITY)


def required_equipment(session_type: str) -> frozenset[str]:
    return REQUIRED_EQUIPMENT.get(session_type, DEFAULT_REQUIRED_EQUIPMENT)


@dataclass
class RoomAssignmentResult:
    grid: Grid
    records: list[RoomAssignmentOut] = field(default_factory=list)
    unassigned_cells: int = 0
    utilization: Counter = field(default_factory=Counter)


class RoomAssigner:
    def __init__(self, *, context: RunContext, settings: GenerationSettings) -> None:
        self.context = context
        self.settings = settings

    def candidates(self, assignment: SessionAssignment, day: int, slot: int) -> list[RoomSpec]:
        capacity = required_capacity(assignment.session_type)
        equipment = required_equipment(assignment.session_type)
        rooms = []
        for room in self.context.rooms:
            if self.context.room_committed(room.id, day, slot):
                continue
            if room.capacity < capacity:
                continue
            if self.settings.require_equipment_match and not equipment <= room.equipment:
                continue
            rooms.append(room)
        return rooms

    def assign(self, grid: Grid) -> RoomAssignmentResult:
        working = grid.copy()
        result = RoomAssignmentResult(grid=working)
        for day, slot, item in list(working.occupied()):
            if item.locked and item.room_id is not None:
                room = self.context.room_by_id[item.room_id]
            else:
                options = self.candidates(item, day, slot)
                if not options:
                    working.replace(day, slot, item.with_room(None))
                    result.unassigned_cells += 1
                    continue
                # min() keeps list order on ties.
                room = min(options, key=lambda option: result.utilization[option.id])
                working.replace(day, slot, item.with_room(room.id))
            result.utilization[room.id] += 1
            subject = self.context.subject(item.subject_id)
            result.records.append(
                RoomAssignmentOut(
                    subject_id=subject.id,
                    subject_name=subject.name,
                    room_id=room.id,
                    room_name=room.name,
                    day=DAYS[day],
                    slot=slot,
                    time_label=ALL_SLOTS[slot].label,
                    capacity=room.capacity,
                    utilization=result.utilization[room.id],
                )
            )
        logger.info(
            "Room assignment assigned=%s unassigned=%s rooms=%s",
            len(result.records),
            result.unassigned_cells,
            len(self.context.rooms),
        )
        return result


def room_records(context: RunContext, grid: Grid) -> list[RoomAssignmentOut]:
    """Rebuild assignment records from a grid whose sessions already carry rooms."""
    counters: Counter = Counter()
    records: list[RoomAssignmentOut] = []
    for day, slot, item in grid.occupied():
        if item.room_id is None:
            continue
        room = context.room_by_id[item.room_id]
        subject = context.subject(item.subject_id)
        counters[room.id] += 1
        records.append(
            RoomAssignmentOut(
                subject_id=subject.id,
                subject_name=subject.name,
                room_id=room.id,
                room_name=room.name,
                day=DAYS[day],
                slot=slot,
                time_label=ALL_SLOTS[slot].label,
                capacity=room.capacity,
                utilization=counters[room.id],
            )
        )
    return records

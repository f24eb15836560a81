from __future__ import annotations

from dataclasses import dataclass
import statistics

from timegrid.schemas.generator import GenerationSettings, QualityScoreOut, QualityWeights
from timegrid.services.context import RunContext
from timegrid.services.grid import REGULAR_CELL_COUNT, Grid


@dataclass(frozen=True)
class QualityBreakdown:
    composite: float
    workload_balance: float
    room_utilization: float | None
    slot_efficiency: float
    conflict_resolution: float

    def to_schema(self, weights: QualityWeights) -> QualityScoreOut:
        return QualityScoreOut(
            composite=self.composite,
            workload_balance=self.workload_balance,
            room_utilization=self.room_utilization,
            slot_efficiency=self.slot_efficiency,
            conflict_resolution=self.conflict_resolution,
            weights=weights,
        )


def workload_balance_score(context: RunContext, grid: Grid) -> float:
    load = grid.faculty_load()
    hours = [load[member.id] for member in context.faculty]
    if len(hours) < 2:
        return 100.0
    return max(0.0, 100.0 - statistics.pstdev(hours))


def slot_efficiency_score(grid: Grid) -> float:
    return grid.filled_count() / grid.total_cells() * 100


def conflict_resolution_score(detected: int, resolved: int) -> float:
    if detected <= 0:
        return 100.0
    return min(resolved, detected) / detected * 100


def room_utilization_score(context: RunContext, grid: Grid) -> float | None:
    if not context.rooms:
        return None
    usage = {room.id: 0 for room in context.rooms}
    for _, _, item in grid.occupied():
        if item.room_id in usage:
            usage[item.room_id] += 1
    rates = [count / REGULAR_CELL_COUNT * 100 for count in usage.values()]
    return sum(rates) / len(rates)


class QualityScorer:
    """Composite 0-100 fitness of a grid.

    Pure with respect to the grid: scoring the same grid twice yields the same
    value. Room utilization drops out of the weighted mean when rooms are not
    part of the run.
    """

    def __init__(self, *, context: RunContext, settings: GenerationSettings) -> None:
        self.context = context
        self.settings = settings
        self.weights = settings.quality_weights

    def score(self, grid: Grid, *, detected: int, resolved: int) -> QualityBreakdown:
        balance = workload_balance_score(self.context, grid)
        efficiency = slot_efficiency_score(grid)
        resolution = conflict_resolution_score(detected, resolved)
        rooms = room_utilization_score(self.context, grid) if self.settings.enable_room_assignment else None

        parts = [
            (self.weights.workload_balance, balance),
            (self.weights.slot_efficiency, efficiency),
            (self.weights.conflict_resolution, resolution),
        ]
        if rooms is not None:
            parts.append((self.weights.room_utilization, rooms))
        total_weight = sum(weight for weight, _ in parts)
        composite = sum(weight * value for weight, value in parts) / total_weight if total_weight > 0 else 0.0

        return QualityBreakdown(
            composite=round(composite, 2),
            workload_balance=round(balance, 2),
            room_utilization=None if rooms is None else round(rooms, 2),
            slot_efficiency=round(efficiency, 2),
            conflict_resolution=round(resolution, 2),
        )

from __future__ import annotations

import logging
import random
from time import perf_counter

from timegrid.schemas.conflict import Conflict
from timegrid.schemas.generator import (
    GenerateTimetableRequest,
    GenerateTimetableResponse,
    GenerationSettings,
    OptimizationStatsOut,
)
from timegrid.schemas.timetable import GridCellOut, RoomAssignmentOut, TimetableGridOut
from timegrid.services.conflict_resolver import ConflictResolver
from timegrid.services.conflict_service import ConflictService, merge_conflicts
from timegrid.services.context import RunContext
from timegrid.services.greedy_scheduler import GreedyScheduler
from timegrid.services.grid import ALL_SLOTS, DAYS, REGULAR_SLOT_COUNT, Grid
from timegrid.services.normalizer import normalize_request
from timegrid.services.optimizer import ScheduleOptimizer
from timegrid.services.quality import QualityScorer
from timegrid.services.room_assigner import RoomAssigner, room_records
from timegrid.services.statistics import build_statistics

logger = logging.getLogger(__name__)

EMPTY_CONTEXT = RunContext(subjects=(), faculty=(), rooms=())


def build_grid_output(context: RunContext, grid: Grid) -> TimetableGridOut:
    """Render the grid with labels; extended slots appear only once opened."""
    opened = {slot for _, slot, _ in grid.occupied() if slot >= REGULAR_SLOT_COUNT}
    slots = [slot for slot in ALL_SLOTS if not slot.extended or slot.index in opened]
    cells: list[GridCellOut] = []
    for day_index, day in enumerate(DAYS):
        for slot in slots:
            item = grid.get(day_index, slot.index)
            fields: dict = {}
            if item is not None:
                subject = context.subject(item.subject_id)
                fields = {
                    "subject_id": subject.id,
                    "subject_code": subject.code,
                    "subject_name": subject.name,
                    "faculty_id": item.faculty_id,
                    "faculty_name": context.faculty_member(item.faculty_id).name,
                    "room_id": item.room_id,
                    "session_type": item.session_type,
                    "is_mandatory": item.is_mandatory,
                }
            cells.append(
                GridCellOut(
                    day=day,
                    slot=slot.index,
                    time_label=slot.label,
                    is_break=grid.is_break(day_index, slot.index),
                    **fields,
                )
            )
    return TimetableGridOut(days=list(DAYS), time_slots=[slot.label for slot in slots], cells=cells)


class TimetableGenerator:
    """Runs one generation: normalize, schedule, detect, resolve, assign rooms, optimize, report.

    Data problems never raise; they surface as conflicts on the response.
    """

    def __init__(self, settings: GenerationSettings, rng: random.Random | None = None) -> None:
        self.settings = settings
        self.random = rng if rng is not None else random.Random(settings.random_seed)

    def run(self, request: GenerateTimetableRequest) -> GenerateTimetableResponse:
        start = perf_counter()
        logger.info(
            "Generator run algorithm=%s subjects=%s faculty=%s rooms=%s seed=%s",
            self.settings.optimization_algorithm,
            len(request.subjects),
            len(request.faculty),
            len(request.rooms),
            self.settings.random_seed,
        )

        normalized = normalize_request(request, self.settings)
        if normalized.fatal is not None:
            logger.warning("Generator aborted: %s", normalized.fatal.description)
            return self._degenerate(normalized.fatal, start)
        context = normalized.context

        schedule = GreedyScheduler(context=context, settings=self.settings, rng=self.random).run()
        grid = schedule.grid

        detector = ConflictService(context, self.settings)
        initial: list[Conflict] = list(schedule.conflicts)
        if self.settings.enable_conflict_detection:
            initial = merge_conflicts(schedule.conflicts, detector.detect_conflicts(grid))

        if self.settings.enable_conflict_detection and self.settings.enable_auto_resolve and initial:
            resolver = ConflictResolver(context=context, settings=self.settings, detector=detector)
            grid = resolver.resolve(grid, initial).grid

        if self.settings.enable_room_assignment:
            grid = RoomAssigner(context=context, settings=self.settings).assign(grid).grid

        scorer = QualityScorer(context=context, settings=self.settings)
        optimization: OptimizationStatsOut | None = None
        if self.settings.enable_ai_optimization and grid.filled_count() > 0:
            optimizer = ScheduleOptimizer(
                context=context,
                settings=self.settings,
                scorer=scorer,
                detector=detector,
                initial_conflicts=initial,
                rng=self.random,
            )
            outcome = optimizer.optimize(grid)
            grid = outcome.grid
            optimization = outcome.to_schema()

        assignments: list[RoomAssignmentOut] = []
        if self.settings.enable_room_assignment:
            assignments = room_records(context, grid)

        if self.settings.enable_conflict_detection:
            remaining = detector.detect_conflicts(grid)
        else:
            remaining = list(initial)
        remaining_ids = {item.id for item in remaining}
        resolved = [item for item in initial if item.id not in remaining_ids]
        conflicts = merge_conflicts(remaining, normalized.issues)

        quality = scorer.score(grid, detected=len(initial), resolved=len(resolved))
        statistics = build_statistics(context, grid, self.settings, detected=len(initial), resolved=len(resolved))
        runtime_ms = int((perf_counter() - start) * 1000)
        logger.info(
            "Generator finished filled=%s/%s conflicts=%s resolved=%s score=%.2f runtime_ms=%s",
            statistics.filled_cells,
            statistics.total_cells,
            len(conflicts),
            len(resolved),
            quality.composite,
            runtime_ms,
        )
        return GenerateTimetableResponse(
            grid=build_grid_output(context, grid),
            conflicts=conflicts,
            resolved_conflicts=resolved,
            room_assignments=assignments,
            quality_score=quality.to_schema(self.settings.quality_weights),
            optimization=optimization,
            statistics=statistics,
            runtime_ms=runtime_ms,
        )

    def _degenerate(self, fatal: Conflict, start: float) -> GenerateTimetableResponse:
        grid = Grid()
        quality = QualityScorer(context=EMPTY_CONTEXT, settings=self.settings).score(grid, detected=1, resolved=0)
        return GenerateTimetableResponse(
            grid=build_grid_output(EMPTY_CONTEXT, grid),
            conflicts=[fatal],
            quality_score=quality.to_schema(self.settings.quality_weights),
            statistics=build_statistics(EMPTY_CONTEXT, grid, self.settings, detected=1, resolved=0),
            runtime_ms=int((perf_counter() - start) * 1000),
        )

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import random
import statistics
from time import perf_counter
from typing import Literal

from timegrid.core.exceptions import SchedulerError
from timegrid.schemas.conflict import Conflict
from timegrid.schemas.generator import GenerationSettings, OptimizationStatsOut
from timegrid.services.conflict_service import ConflictService
from timegrid.services.context import FacultySpec, RunContext
from timegrid.services.greedy_scheduler import preference_penalty
from timegrid.services.grid import (
    DAYS,
    REGULAR_SLOT_COUNT,
    SATURDAY,
    Cell,
    Grid,
    placement_allowed,
)
from timegrid.services.quality import QualityBreakdown, QualityScorer

logger = logging.getLogger(__name__)

MAX_SEED_MOVES = 5
MOVE_DRAW_LIMIT = 25
SPREAD_PENALTY = 5.0


@dataclass(frozen=True)
class Move:
    kind: Literal["swap", "reassign"]
    first: Cell
    second: Cell | None = None
    faculty_id: str | None = None


@dataclass(frozen=True)
class HardViolations:
    faculty_collisions: frozenset[tuple[str, int, int]]
    room_collisions: int
    cap_overrun: int
    window_violations: int
    block_runs: tuple[tuple[str, tuple[int, ...]], ...]
    split_days: int
    long_runs: int
    subject_hours: tuple[tuple[str, int], ...]

    def allows(self, candidate: "HardViolations") -> bool:
        """Whether ``candidate`` is no worse than this reference on every hard rule."""
        return (
            candidate.faculty_collisions <= self.faculty_collisions
            and candidate.room_collisions <= self.room_collisions
            and candidate.cap_overrun <= self.cap_overrun
            and candidate.window_violations <= self.window_violations
            and candidate.block_runs == self.block_runs
            and candidate.split_days <= self.split_days
            and candidate.long_runs <= self.long_runs
            and candidate.subject_hours == self.subject_hours
        )


@dataclass(frozen=True)
class Evaluation:
    objective: float
    quality: QualityBreakdown


@dataclass
class OptimizationOutcome:
    grid: Grid
    algorithm: str
    iterations: int = 0
    improvements: int = 0
    initial_score: float = 0.0
    final_score: float = 0.0
    runtime_ms: int = 0

    def to_schema(self) -> OptimizationStatsOut:
        return OptimizationStatsOut(
            algorithm=self.algorithm,
            iterations=self.iterations,
            improvements=self.improvements,
            initial_score=self.initial_score,
            final_score=self.final_score,
            runtime_ms=self.runtime_ms,
        )


class ScheduleOptimizer:
    def __init__(
        self,
        *,
        context: RunContext,
        settings: GenerationSettings,
        scorer: QualityScorer,
        detector: ConflictService,
        initial_conflicts: list[Conflict],
        rng: random.Random,
    ) -> None:
        self.context = context
        self.settings = settings
        self.scorer = scorer
        self.detector = detector
        self.initial_ids = {item.id for item in initial_conflicts}
        self.random = rng
        self.budget = settings.max_optimization_iterations
        self.iterations = 0
        self._cache: dict[tuple, Evaluation] = {}
        self._reference: HardViolations | None = None

    # -- scoring ---------------------------------------------------------

    def quality(self, grid: Grid) -> QualityBreakdown:
        current_ids = {item.id for item in self.detector.detect_conflicts(grid)}
        resolved = len(self.initial_ids - current_ids)
        return self.scorer.score(grid, detected=len(self.initial_ids), resolved=resolved)

    def preference_score(self, grid: Grid) -> float:
        filled = 0
        penalty = 0
        for day, slot, item in grid.occupied():
            filled += 1
            penalty += preference_penalty(grid, day, slot, item, self.settings)
        weekday_loads = [grid.day_load(day) for day in range(len(DAYS)) if day != SATURDAY]
        spread = statistics.pstdev(weekday_loads) if len(weekday_loads) > 1 else 0.0
        return max(0.0, 100.0 - penalty / max(1, filled) - spread * SPREAD_PENALTY)

    def evaluate(self, grid: Grid) -> Evaluation:
        key = grid.signature()
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        quality = self.quality(grid)
        evaluation = Evaluation(
            objective=quality.composite + self.settings.preference_weight * self.preference_score(grid),
            quality=quality,
        )
        self._cache[key] = evaluation
        return evaluation

    # -- feasibility -----------------------------------------------------

    def hard_violations(self, grid: Grid) -> HardViolations:
        collisions = set()
        room_collisions = 0
        window_violations = 0
        for day, slot, item in grid.occupied():
            if self.context.faculty_committed(item.faculty_id, day, slot):
                collisions.add((item.faculty_id, day, slot))
            if item.room_id is not None and self.context.room_committed(item.room_id, day, slot):
                room_collisions += 1
            if not placement_allowed(item.is_mandatory, day, slot, allow_extended=True):
                window_violations += 1

        weekly = grid.faculty_load()
        daily = grid.faculty_day_load()
        overrun = 0
        for member in self.context.faculty:
            overrun += max(0, weekly[member.id] - member.max_hours_per_week)
            for day in range(len(DAYS)):
                overrun += max(0, daily[(member.id, day)] - member.max_hours_per_day)
        for day in range(len(DAYS)):
            overrun += max(0, grid.day_load(day) - self.settings.max_daily_hours)

        block_runs = []
        split_days = 0
        for subject in self.context.subjects:
            if not subject.is_block:
                continue
            lengths = []
            for day in range(len(DAYS)):
                runs = grid.subject_runs(subject.id, day)
                if len(runs) > 1:
                    split_days += 1
                lengths.extend(last - first + 1 for first, last in runs)
            block_runs.append((subject.id, tuple(sorted(lengths))))

        return HardViolations(
            faculty_collisions=frozenset(collisions),
            room_collisions=room_collisions,
            cap_overrun=overrun,
            window_violations=window_violations,
            block_runs=tuple(block_runs),
            split_days=split_days,
            long_runs=self._long_runs(grid),
            subject_hours=tuple(sorted(grid.subject_load().items())),
        )

    def _long_runs(self, grid: Grid) -> int:
        if not self.settings.enable_break_management:
            return 0
        limit = self.settings.mandatory_break_after_hours
        count = 0
        for day in range(len(DAYS)):
            run = 0
            for item in grid.day_cells(day):
                run = run + 1 if item is not None else 0
                if run > limit:
                    count += 1
                    break
        return count

    def is_feasible(self, grid: Grid) -> bool:
        if self._reference is None:
            raise SchedulerError("Optimizer reference grid is not set")
        return self._reference.allows(self.hard_violations(grid))

    # -- moves -----------------------------------------------------------

    def _movable_cells(self, grid: Grid) -> list[Cell]:
        cells = []
        for day in range(len(DAYS)):
            for slot in range(REGULAR_SLOT_COUNT):
                if grid.is_break(day, slot):
                    continue
                item = grid.get(day, slot)
                if item is not None and item.locked:
                    continue
                cells.append((day, slot))
        return cells

    def _reassignment_pool(self, subject_id: str, current: str) -> list[FacultySpec]:
        subject = self.context.subject(subject_id)
        pool = self.context.qualified_faculty(subject) or self.context.department_faculty(subject.department)
        return [member for member in pool if member.id != current]

    def random_move(self, grid: Grid) -> Move | None:
        cells = self._movable_cells(grid)
        occupied = [cell for cell in cells if grid.get(*cell) is not None]
        if not occupied:
            return None
        for _ in range(MOVE_DRAW_LIMIT):
            first = self.random.choice(occupied)
            if self.random.random() < 0.25:
                item = grid.get(*first)
                pool = self._reassignment_pool(item.subject_id, item.faculty_id)
                if pool:
                    return Move(kind="reassign", first=first, faculty_id=self.random.choice(pool).id)
                continue
            second = self.random.choice(cells)
            if second != first:
                return Move(kind="swap", first=first, second=second)
        return None

    def apply(self, grid: Grid, move: Move) -> Grid:
        candidate = grid.copy()
        if move.kind == "swap":
            left = candidate.remove(*move.first)
            right = candidate.remove(*move.second)
            candidate.replace(move.first[0], move.first[1], right)
            candidate.replace(move.second[0], move.second[1], left)
            return candidate

        day, slot = move.first
        item = candidate.get(day, slot)
        targets = [slot]
        if item.is_block:
            for first, last in candidate.subject_runs(item.subject_id, day):
                if first <= slot <= last:
                    targets = list(range(first, last + 1))
        for target in targets:
            current = candidate.get(day, target)
            candidate.replace(day, target, current.with_faculty(move.faculty_id))
        return candidate

    def feasible_neighbor(self, grid: Grid) -> Grid | None:
        move = self.random_move(grid)
        if move is None:
            return None
        candidate = self.apply(grid, move)
        if not self.is_feasible(candidate):
            return None
        return candidate

    # -- strategies ------------------------------------------------------

    def optimize(self, grid: Grid) -> OptimizationOutcome:
        start = perf_counter()
        algorithm = self.settings.optimization_algorithm
        self.iterations = 0
        self._reference = self.hard_violations(grid)
        initial = self.evaluate(grid)
        logger.info("Optimizer run algorithm=%s budget=%s initial=%.2f", algorithm, self.budget, initial.quality.composite)

        if algorithm == "greedy":
            best, improvements = self._run_greedy(grid)
        elif algorithm == "temperature":
            best, improvements = self._run_temperature(grid)
        else:
            best, improvements = self._run_population(grid)

        final = self.evaluate(best)
        if final.objective < initial.objective:
            best, final = grid.copy(), initial
        outcome = OptimizationOutcome(
            grid=best,
            algorithm=algorithm,
            iterations=self.iterations,
            improvements=improvements,
            initial_score=initial.quality.composite,
            final_score=final.quality.composite,
            runtime_ms=int((perf_counter() - start) * 1000),
        )
        logger.info(
            "Optimizer finished algorithm=%s iterations=%s improvements=%s score=%.2f->%.2f",
            algorithm,
            outcome.iterations,
            outcome.improvements,
            outcome.initial_score,
            outcome.final_score,
        )
        return outcome

    def _spend(self) -> bool:
        if self.iterations >= self.budget:
            return False
        self.iterations += 1
        return True

    def _run_greedy(self, grid: Grid) -> tuple[Grid, int]:
        options = self.settings.greedy
        current = grid.copy()
        current_objective = self.evaluate(current).objective
        changes = 0
        while changes < options.max_changes and self.iterations < self.budget:
            best_candidate: Grid | None = None
            best_objective = current_objective
            for _ in range(options.candidate_moves):
                if not self._spend():
                    break
                candidate = self.feasible_neighbor(current)
                if candidate is None:
                    continue
                objective = self.evaluate(candidate).objective
                if objective > best_objective:
                    best_candidate = candidate
                    best_objective = objective
            if best_candidate is None or best_objective - current_objective <= options.improvement_threshold:
                break
            current = best_candidate
            current_objective = best_objective
            changes += 1
        return current, changes

    def _seed_variant(self, grid: Grid) -> Grid:
        variant = grid.copy()
        for _ in range(self.random.randint(1, MAX_SEED_MOVES)):
            candidate = self.feasible_neighbor(variant)
            if candidate is not None:
                variant = candidate
        return variant

    def _crossover(self, parent_a: Grid, parent_b: Grid) -> Grid:
        cells = []
        breaks = set()
        for day in range(len(DAYS)):
            source = parent_a if self.random.random() < 0.5 else parent_b
            cells.extend(source.day_cells(day))
            breaks.update(cell for cell in source.break_cells if cell[0] == day)
        return Grid(cells, breaks)

    def _mutate(self, grid: Grid) -> Grid:
        if self.random.random() >= self.settings.population.mutation_rate:
            return grid
        candidate = self.feasible_neighbor(grid)
        return candidate if candidate is not None else grid

    def _select(self, population: list[Grid], objectives: list[float]) -> Grid:
        size = min(self.settings.population.tournament_size, len(population))
        contenders = self.random.sample(range(len(population)), size)
        best_index = max(contenders, key=lambda idx: objectives[idx])
        return population[best_index]

    def _run_population(self, grid: Grid) -> tuple[Grid, int]:
        options = self.settings.population
        population = [grid.copy()]
        while len(population) < options.population_size:
            population.append(self._seed_variant(grid))

        best = grid.copy()
        best_objective = self.evaluate(best).objective
        improvements = 0
        for _generation in range(options.generations):
            if self.iterations >= self.budget:
                break
            objectives = []
            for item in population:
                self._spend()
                objectives.append(self.evaluate(item).objective)
            ranked_indices = sorted(range(len(population)), key=lambda idx: objectives[idx], reverse=True)
            ranked_population = [population[idx] for idx in ranked_indices]
            ranked_objectives = [objectives[idx] for idx in ranked_indices]

            if ranked_objectives[0] > best_objective:
                best = ranked_population[0].copy()
                best_objective = ranked_objectives[0]
                improvements += 1

            next_population = [item.copy() for item in ranked_population[: options.elite_count]]
            while len(next_population) < options.population_size:
                parent_a = self._select(ranked_population, ranked_objectives)
                parent_b = self._select(ranked_population, ranked_objectives)
                if self.random.random() < options.crossover_rate:
                    child = self._crossover(parent_a, parent_b)
                    if not self.is_feasible(child):
                        child = parent_a.copy()
                else:
                    child = parent_a.copy()
                next_population.append(self._mutate(child))
            population = next_population

        for item in population:
            objective = self.evaluate(item).objective
            if objective > best_objective:
                best = item.copy()
                best_objective = objective
                improvements += 1
        return best, improvements

    def _run_temperature(self, grid: Grid) -> tuple[Grid, int]:
        options = self.settings.temperature
        current = grid.copy()
        current_objective = self.evaluate(current).objective
        best = current
        best_objective = current_objective
        improvements = 0
        temperature = options.initial_temperature

        while temperature > options.min_temperature and self.iterations < self.budget:
            for _ in range(options.iterations_per_temperature):
                if not self._spend():
                    break
                candidate = self.feasible_neighbor(current)
                if candidate is None:
                    continue
                candidate_objective = self.evaluate(candidate).objective
                # Energy is the negated objective.
                delta = current_objective - candidate_objective
                if delta <= 0:
                    accept = True
                else:
                    probability = math.exp(-delta / max(temperature, 1e-9))
                    accept = self.random.random() < probability
                if accept:
                    current = candidate
                    current_objective = candidate_objective
                if current_objective > best_objective:
                    best = current
                    best_objective = current_objective
                    improvements += 1
            temperature *= options.cooling_rate
        return best, improvements

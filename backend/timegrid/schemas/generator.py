from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from timegrid.schemas.conflict import Conflict
from timegrid.schemas.settings import BreakTimeEntry
from timegrid.schemas.timetable import (
    CommitmentPayload,
    FacultyPayload,
    LockedSessionPayload,
    RoomAssignmentOut,
    RoomPayload,
    SubjectPayload,
    TimetableGridOut,
)


class QualityWeights(BaseModel):
    workload_balance: float = Field(default=25.0, ge=0.0, le=100.0)
    room_utilization: float = Field(default=20.0, ge=0.0, le=100.0)
    slot_efficiency: float = Field(default=25.0, ge=0.0, le=100.0)
    conflict_resolution: float = Field(default=30.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def validate_total(self) -> "QualityWeights":
        total = self.workload_balance + self.room_utilization + self.slot_efficiency + self.conflict_resolution
        if total <= 0:
            raise ValueError("At least one quality weight must be positive")
        return self


class GreedyStrategySettings(BaseModel):
    max_changes: int = Field(default=10, ge=1, le=500)
    candidate_moves: int = Field(default=40, ge=1, le=2000)
    improvement_threshold: float = Field(default=0.01, ge=0.0, le=100.0)


class PopulationStrategySettings(BaseModel):
    population_size: int = Field(default=20, ge=2, le=500)
    generations: int = Field(default=25, ge=1, le=5000)
    elite_fraction: float = Field(default=0.2, ge=0.0, le=0.9)
    tournament_size: int = Field(default=3, ge=1, le=50)
    mutation_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    crossover_rate: float = Field(default=0.8, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_relationships(self) -> "PopulationStrategySettings":
        if self.tournament_size > self.population_size:
            raise ValueError("tournament_size cannot exceed population_size")
        return self

    @property
    def elite_count(self) -> int:
        return max(1, int(self.population_size * self.elite_fraction))


class TemperatureStrategySettings(BaseModel):
    initial_temperature: float = Field(default=10.0, gt=0.0, le=10_000.0)
    cooling_rate: float = Field(default=0.95, ge=0.5, le=0.99999)
    iterations_per_temperature: int = Field(default=10, ge=1, le=1000)
    min_temperature: float = Field(default=0.05, gt=0.0, le=1000.0)

    @model_validator(mode="after")
    def validate_range(self) -> "TemperatureStrategySettings":
        if self.min_temperature >= self.initial_temperature:
            raise ValueError("min_temperature must be below initial_temperature")
        return self


OptimizationAlgorithm = Literal["greedy", "population", "temperature"]


class GenerationSettings(BaseModel):
    enable_conflict_detection: bool = True
    enable_auto_resolve: bool = True
    enable_room_assignment: bool = True
    enable_ai_optimization: bool = True
    enable_break_management: bool = True

    max_faculty_hours_per_day: int = Field(default=6, ge=1, le=10)
    max_faculty_hours_per_week: int = Field(default=20, ge=1, le=60)
    max_daily_hours: int = Field(default=7, ge=1, le=10)
    min_break_duration: int = Field(default=15, ge=0, le=120)
    mandatory_break_after_hours: int = Field(default=4, ge=1, le=10)
    max_conflict_resolution_attempts: int = Field(default=100, ge=1, le=10_000)
    max_optimization_iterations: int = Field(default=1000, ge=1, le=100_000)
    scheduler_max_attempts: int = Field(default=3000, ge=1, le=100_000)
    lab_block_size: int = Field(default=2, ge=1, le=4)

    avoid_consecutive_theory: bool = True
    prioritize_morning_labs: bool = False
    require_equipment_match: bool = False
    use_default_rooms: bool = False

    optimization_algorithm: OptimizationAlgorithm = "population"
    quality_weights: QualityWeights = Field(default_factory=QualityWeights)
    preference_weight: float = Field(default=0.05, ge=0.0, le=1.0)
    greedy: GreedyStrategySettings = Field(default_factory=GreedyStrategySettings)
    population: PopulationStrategySettings = Field(default_factory=PopulationStrategySettings)
    temperature: TemperatureStrategySettings = Field(default_factory=TemperatureStrategySettings)
    random_seed: int | None = Field(default=None, ge=0, le=2_000_000_000)

    @model_validator(mode="after")
    def validate_relationships(self) -> "GenerationSettings":
        if self.max_faculty_hours_per_day > self.max_faculty_hours_per_week:
            raise ValueError("max_faculty_hours_per_day cannot exceed max_faculty_hours_per_week")
        return self


class GenerateTimetableRequest(BaseModel):
    subjects: list[SubjectPayload] = Field(default_factory=list)
    faculty: list[FacultyPayload] = Field(default_factory=list)
    rooms: list[RoomPayload] = Field(default_factory=list)
    break_times: list[BreakTimeEntry] = Field(default_factory=list)
    commitments: list[CommitmentPayload] = Field(default_factory=list)
    locked_sessions: list[LockedSessionPayload] = Field(default_factory=list)
    settings: GenerationSettings | None = None


class QualityScoreOut(BaseModel):
    composite: float = Field(ge=0.0, le=100.0)
    workload_balance: float
    room_utilization: float | None = None
    slot_efficiency: float
    conflict_resolution: float
    weights: QualityWeights


class OptimizationStatsOut(BaseModel):
    algorithm: OptimizationAlgorithm
    iterations: int
    improvements: int
    initial_score: float
    final_score: float
    runtime_ms: int


class GenerationStatisticsOut(BaseModel):
    total_cells: int
    filled_cells: int
    efficiency: float
    mandatory_cells: int
    unassigned_room_cells: int
    faculty_utilization: dict[str, float] = Field(default_factory=dict)
    subject_coverage: dict[str, float] = Field(default_factory=dict)
    room_utilization: dict[str, float] = Field(default_factory=dict)
    conflicts_detected: int = 0
    conflicts_resolved: int = 0
    conflict_resolution_rate: float = 100.0


class GenerateTimetableResponse(BaseModel):
    grid: TimetableGridOut
    conflicts: list[Conflict] = Field(default_factory=list)
    resolved_conflicts: list[Conflict] = Field(default_factory=list)
    room_assignments: list[RoomAssignmentOut] = Field(default_factory=list)
    quality_score: QualityScoreOut
    optimization: OptimizationStatsOut | None = None
    statistics: GenerationStatisticsOut
    runtime_ms: int

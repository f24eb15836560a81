import pytest
from pydantic import ValidationError

from timegrid.core.config import Settings
from timegrid.schemas.generator import GenerationSettings, PopulationStrategySettings, QualityWeights, TemperatureStrategySettings
from timegrid.schemas.settings import BreakTimeEntry


def test_cors_origins_accept_comma_and_json_lists():
    assert Settings(cors_origins="http://a.test, http://b.test").cors_origins == ["http://a.test", "http://b.test"]
    assert Settings(cors_origins='["http://c.test"]').cors_origins == ["http://c.test"]


def test_environment_prefix_is_applied(monkeypatch):
    monkeypatch.setenv("TIMEGRID_DEFAULT_OPTIMIZATION_ALGORITHM", "temperature")
    monkeypatch.setenv("TIMEGRID_PROJECT_NAME", "Test Grid")
    settings = Settings()
    assert settings.default_optimization_algorithm == "temperature"
    assert settings.project_name == "Test Grid"


def test_generation_settings_defaults():
    settings = GenerationSettings()
    assert settings.max_faculty_hours_per_day == 6
    assert settings.max_faculty_hours_per_week == 20
    assert settings.max_daily_hours == 7
    assert settings.mandatory_break_after_hours == 4
    assert settings.max_conflict_resolution_attempts == 100
    assert settings.max_optimization_iterations == 1000
    assert settings.scheduler_max_attempts == 3000
    assert settings.optimization_algorithm == "population"
    assert settings.preference_weight == 0.05


def test_daily_cap_cannot_exceed_weekly_cap():
    with pytest.raises(ValidationError):
        GenerationSettings(max_faculty_hours_per_day=8, max_faculty_hours_per_week=4)


def test_strategy_settings_validation():
    with pytest.raises(ValidationError):
        PopulationStrategySettings(population_size=4, tournament_size=5)
    with pytest.raises(ValidationError):
        TemperatureStrategySettings(initial_temperature=1.0, min_temperature=2.0)
    with pytest.raises(ValidationError):
        QualityWeights(workload_balance=0, room_utilization=0, slot_efficiency=0, conflict_resolution=0)
    assert PopulationStrategySettings(population_size=10, elite_fraction=0.2).elite_count == 2


def test_break_duration_is_derived_from_times():
    entry = BreakTimeEntry(name="Lunch", start_time="12:00", end_time="12:55")
    assert entry.duration == 55
    with pytest.raises(ValidationError):
        BreakTimeEntry(name="Backwards", start_time="13:00", end_time="12:00")

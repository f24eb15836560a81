import random

from timegrid.schemas.generator import GenerationSettings
from timegrid.services.greedy_scheduler import GreedyScheduler
from timegrid.services.grid import DAYS, SATURDAY, placement_allowed


def subject(subject_id, name, hours=3, kind="theory", **extra):
    return {"id": subject_id, "code": subject_id.upper(), "name": name, "type": kind, "hours_per_week": hours, **extra}


def faculty(faculty_id, name="Prof", **extra):
    return {"id": faculty_id, "name": name, **extra}


def run_scheduler(context, settings, seed=7):
    return GreedyScheduler(context=context, settings=settings, rng=random.Random(seed)).run()


def test_single_theory_subject_spreads_over_distinct_days(build_context):
    context, settings = build_context(subjects=[subject("s1", "Algorithms")], faculty=[faculty("f1")])
    outcome = run_scheduler(context, settings)
    cells = [(day, slot) for day, slot, _ in outcome.grid.occupied()]
    assert len(cells) == 3
    assert len({day for day, _ in cells}) == 3
    assert outcome.conflicts == []
    assert outcome.placed_hours == 3


def test_subjects_sharing_faculty_never_overlap(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms", 5), subject("s2", "Databases", 4)],
        faculty=[faculty("f1")],
    )
    grid = run_scheduler(context, settings).grid
    assert grid.subject_load() == {"s1": 5, "s2": 4}
    assert grid.faculty_load()["f1"] == 9
    assert grid.filled_count() == 9


def test_lab_blocks_are_contiguous_and_one_per_day(build_context):
    context, settings = build_context(
        subjects=[subject("lab", "Networks Lab", 4, kind="lab")],
        faculty=[faculty("f1", specialization=["lab"])],
    )
    grid = run_scheduler(context, settings).grid
    runs = [run for day in range(len(DAYS)) for run in grid.subject_runs("lab", day)]
    assert len(runs) == 2
    assert all(last - first + 1 == 2 for first, last in runs)


def test_mandatory_subjects_land_in_the_saturday_window(build_context):
    context, settings = build_context(
        subjects=[subject("lib", "Library", 1), subject("sem", "Seminar", 2), subject("s1", "Algorithms", 4)],
        faculty=[faculty("f1", specialization=["general"]), faculty("f2", specialization=["algorithms"])],
    )
    grid = run_scheduler(context, settings).grid
    for day, slot, item in grid.occupied():
        assert placement_allowed(item.is_mandatory, day, slot)
        if item.is_mandatory:
            assert day == SATURDAY
    assert grid.subject_load()["lib"] == 1
    assert grid.subject_load()["sem"] == 2


def test_weekly_and_daily_caps_are_respected(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms", 6), subject("s2", "Databases", 6)],
        faculty=[faculty("f1", specialization=["algorithms", "databases"], max_hours_per_week=8, max_hours_per_day=2)],
    )
    outcome = run_scheduler(context, settings)
    grid = outcome.grid
    assert grid.faculty_load()["f1"] <= 8
    assert all(grid.faculty_day_load()[("f1", day)] <= 2 for day in range(len(DAYS)))
    assert outcome.conflicts
    assert all(conflict.conflict_type == "coverage" for conflict in outcome.conflicts)


def test_external_commitments_block_cells(build_context):
    commitments = [{"faculty_id": "f1", "day": day, "slot": slot} for day in DAYS[:5] for slot in range(5)]
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms", 3)],
        faculty=[faculty("f1")],
        commitments=commitments,
    )
    grid = run_scheduler(context, settings).grid
    for day, slot, item in grid.occupied():
        assert not context.faculty_committed(item.faculty_id, day, slot)
        assert not grid.is_break(day, slot)
    assert grid.subject_load()["s1"] == 3


def test_reserved_break_slots_stay_empty(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms", 30)],
        faculty=[faculty("f1")],
        break_times=[{"name": "Tea", "start_time": "09:55", "end_time": "10:50", "break_type": "short"}],
    )
    grid = run_scheduler(context, settings).grid
    assert grid.filled_count() > 0
    assert all(grid.is_break(day, 1) for day in range(len(DAYS)))
    assert all(slot != 1 for _, slot, _ in grid.occupied())


def test_each_batch_goes_to_the_least_loaded_eligible_member(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms", 4)],
        faculty=[faculty("f1", specialization=["algorithms"]), faculty("f2", specialization=["algorithms"])],
    )
    grid = run_scheduler(context, settings).grid
    assert grid.faculty_load() == {"f1": 3, "f2": 1}


def test_locked_sessions_are_pre_placed(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms", 2)],
        faculty=[faculty("f1"), faculty("f2")],
        locked_sessions=[{"subject_id": "s1", "faculty_id": "f2", "day": "THU", "slot": 5}],
    )
    grid = run_scheduler(context, settings).grid
    locked = grid.get(3, 5)
    assert locked is not None and locked.locked and locked.faculty_id == "f2"
    assert grid.subject_load()["s1"] == 2


def test_subject_without_eligible_faculty_reports_reason(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms", 2, department="CSE")],
        faculty=[faculty("f1", specialization=["chemistry"], department="ECE")],
    )
    outcome = run_scheduler(context, settings)
    assert outcome.grid.filled_count() == 0
    assert len(outcome.conflicts) == 1
    assert "no eligible faculty" in outcome.conflicts[0].description


def test_same_seed_gives_same_grid(build_context):
    context, settings = build_context(
        subjects=[subject(f"s{index}", f"Course {index}", 3) for index in range(5)],
        faculty=[faculty("f1"), faculty("f2")],
    )
    first = run_scheduler(context, settings, seed=99).grid
    second = run_scheduler(context, settings, seed=99).grid
    assert first.signature() == second.signature()


def test_scheduler_attempt_budget_is_honoured(build_context):
    context, _ = build_context(subjects=[subject("s1", "Algorithms", 6)], faculty=[faculty("f1")])
    settings = GenerationSettings(scheduler_max_attempts=1)
    outcome = run_scheduler(context, settings)
    assert outcome.attempts == 1
    assert outcome.grid.filled_count() == 3

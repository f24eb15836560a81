from timegrid.services.context import FacultySpec
from timegrid.services.grid import Grid, SessionAssignment
from timegrid.services.mandatory import create_mandatory_subjects, mandatory_rank, mandatory_subjects_for_year
from timegrid.services.workload import (
    constrained_daily_cap,
    constrained_weekly_cap,
    fits_caps,
    has_headroom,
    utilization_percent,
)


def member(weekly=4, daily=2):
    return FacultySpec(
        id="f1",
        name="Prof A",
        specialization=frozenset(),
        department=None,
        max_hours_per_week=weekly,
        max_hours_per_day=daily,
    )


def test_caps_fall_back_to_defaults():
    assert constrained_weekly_cap(None, 20) == 20
    assert constrained_weekly_cap(12, 20) == 12
    assert constrained_daily_cap(None, 6, 4) == 4
    assert constrained_daily_cap(3, 6, 20) == 3


def test_utilization_and_headroom():
    assert utilization_percent(5, 20) == 25.0
    assert utilization_percent(5, 0) == 0.0
    assert has_headroom(15, 20)
    assert not has_headroom(16, 20)


def test_fits_caps_checks_weekly_and_daily_limits():
    grid = Grid()
    session = SessionAssignment(subject_id="s1", faculty_id="f1", session_type="theory")
    grid.place(0, 0, session)
    grid.place(0, 1, session)
    assert not fits_caps(member(), grid, 0)
    assert fits_caps(member(), grid, 1, extra_hours=2)
    assert not fits_caps(member(), grid, 1, extra_hours=3)


def test_mandatory_catalogue_by_year():
    assert [item.code for item in mandatory_subjects_for_year(2)] == ["LIB201", "CNS201", "SEM201", "SPT201"]
    subjects = create_mandatory_subjects("Computer Science", 3)
    assert subjects[0].id == "computer-science-lib301"
    assert all(item.year == 3 and item.is_mandatory for item in subjects)


def test_mandatory_rank_orders_subjects():
    assert mandatory_rank("Central Library", None) == 0
    assert mandatory_rank("Sports Hour", "X1") == 3
    assert mandatory_rank("Algorithms", "CS201") is None
    assert mandatory_rank(None, "spt401") is None

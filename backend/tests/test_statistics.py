from timegrid.schemas.generator import GenerationSettings
from timegrid.services.grid import Grid, SessionAssignment
from timegrid.services.statistics import build_statistics, resolution_rate


def subject(subject_id, name, hours=3, kind="theory"):
    return {"id": subject_id, "code": subject_id.upper(), "name": name, "type": kind, "hours_per_week": hours}


def test_resolution_rate_defaults_to_full_when_nothing_detected():
    assert resolution_rate(0, 0) == 100.0
    assert resolution_rate(4, 1) == 25.0


def test_statistics_reflect_grid_occupancy(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms", 4), subject("lib", "Library", 1), subject("s0", "Empty", 0)],
        faculty=[
            {"id": "f1", "name": "Prof A", "max_hours_per_week": 10},
            {"id": "f2", "name": "Prof B", "specialization": ["general"]},
        ],
        rooms=[{"id": "hall", "name": "Hall", "capacity": 60}],
    )
    grid = Grid()
    grid.place(0, 0, SessionAssignment(subject_id="s1", faculty_id="f1", session_type="theory", room_id="hall"))
    grid.place(1, 0, SessionAssignment(subject_id="s1", faculty_id="f1", session_type="theory"))
    grid.place(5, 3, SessionAssignment(subject_id="lib", faculty_id="f2", session_type="theory", is_mandatory=True))

    stats = build_statistics(context, grid, settings, detected=4, resolved=3)
    assert stats.total_cells == 42
    assert stats.filled_cells == 3
    assert stats.efficiency == round(3 / 42 * 100, 2)
    assert stats.mandatory_cells == 1
    assert stats.unassigned_room_cells == 2
    assert stats.faculty_utilization == {"f1": 20.0, "f2": 5.0}
    assert stats.subject_coverage == {"s1": 50.0, "lib": 100.0, "s0": 100.0}
    assert stats.room_utilization == {"hall": round(1 / 42 * 100, 2)}
    assert stats.conflict_resolution_rate == 75.0


def test_room_figures_are_blank_when_rooms_disabled(build_context):
    settings = GenerationSettings(enable_room_assignment=False)
    context, _ = build_context(
        settings,
        subjects=[subject("s1", "Algorithms", 1)],
        faculty=[{"id": "f1", "name": "Prof A"}],
        rooms=[{"id": "hall", "name": "Hall", "capacity": 60}],
    )
    grid = Grid()
    grid.place(0, 0, SessionAssignment(subject_id="s1", faculty_id="f1", session_type="theory"))
    stats = build_statistics(context, grid, settings, detected=0, resolved=0)
    assert stats.room_utilization == {}
    assert stats.unassigned_room_cells == 0

from timegrid.schemas.generator import GenerationSettings
from timegrid.services.grid import Grid, SessionAssignment
from timegrid.services.room_assigner import RoomAssigner, required_capacity, room_records


def subject(subject_id, name, hours=3, kind="theory"):
    return {"id": subject_id, "code": subject_id.upper(), "name": name, "type": kind, "hours_per_week": hours}


ROOMS = [
    {"id": "small", "name": "Small 10", "capacity": 20, "equipment": ["projector"]},
    {"id": "lab", "name": "Lab 101", "capacity": 30, "equipment": ["computers", "projector"]},
    {"id": "hall", "name": "Hall 201", "capacity": 60, "equipment": ["projector"]},
]


def session(subject_id, kind="theory", room_id=None, locked=False):
    return SessionAssignment(subject_id=subject_id, faculty_id="f1", session_type=kind, room_id=room_id, locked=locked)


def test_required_capacity_by_session_type():
    assert required_capacity("lab") == 30
    assert required_capacity("theory") == 60
    assert required_capacity("tutorial") == 40


def test_theory_sessions_need_large_rooms(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms")], faculty=[{"id": "f1", "name": "Prof A"}], rooms=ROOMS
    )
    grid = Grid()
    grid.place(0, 0, session("s1"))
    result = RoomAssigner(context=context, settings=settings).assign(grid)
    assert result.grid.get(0, 0).room_id == "hall"
    assert result.unassigned_cells == 0
    assert result.records[0].room_name == "Hall 201"
    assert result.records[0].time_label == "09:00-09:55"
    # Assignment works on a copy.
    assert grid.get(0, 0).room_id is None


def test_usage_is_balanced_across_eligible_rooms(build_context):
    context, settings = build_context(
        subjects=[subject("lab", "Networks Lab", 4, kind="lab")], faculty=[{"id": "f1", "name": "Prof A"}], rooms=ROOMS
    )
    grid = Grid()
    for slot in range(4):
        grid.place(0, slot, session("lab", kind="lab"))
    result = RoomAssigner(context=context, settings=settings).assign(grid)
    assert result.utilization == {"lab": 2, "hall": 2}
    assert [record.utilization for record in result.records] == [1, 1, 2, 2]


def test_equipment_match_filters_rooms(build_context):
    settings = GenerationSettings(require_equipment_match=True)
    context, _ = build_context(
        settings, subjects=[subject("lab", "Networks Lab", 1, kind="lab")], faculty=[{"id": "f1", "name": "Prof A"}], rooms=ROOMS
    )
    grid = Grid()
    grid.place(0, 0, session("lab", kind="lab"))
    result = RoomAssigner(context=context, settings=settings).assign(grid)
    assert result.grid.get(0, 0).room_id == "lab"


def test_committed_rooms_are_skipped_and_shortage_is_counted(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms")],
        faculty=[{"id": "f1", "name": "Prof A"}],
        rooms=ROOMS,
        commitments=[{"room_id": "hall", "day": "MON", "slot": 0}],
    )
    grid = Grid()
    grid.place(0, 0, session("s1"))
    grid.place(0, 1, session("s1"))
    result = RoomAssigner(context=context, settings=settings).assign(grid)
    assert result.grid.get(0, 0).room_id is None
    assert result.grid.get(0, 1).room_id == "hall"
    assert result.unassigned_cells == 1


def test_locked_sessions_keep_their_room(build_context):
    context, settings = build_context(
        subjects=[subject("s1", "Algorithms")], faculty=[{"id": "f1", "name": "Prof A"}], rooms=ROOMS
    )
    grid = Grid()
    grid.place(0, 0, session("s1", room_id="small", locked=True))
    result = RoomAssigner(context=context, settings=settings).assign(grid)
    assert result.grid.get(0, 0).room_id == "small"
    assert result.utilization["small"] == 1


def test_room_records_rebuilt_from_grid(build_context):
    context, _ = build_context(
        subjects=[subject("s1", "Algorithms")], faculty=[{"id": "f1", "name": "Prof A"}], rooms=ROOMS
    )
    grid = Grid()
    grid.place(0, 0, session("s1", room_id="hall"))
    grid.place(1, 0, session("s1", room_id="hall"))
    grid.place(2, 0, session("s1"))
    records = room_records(context, grid)
    assert [(record.day, record.utilization) for record in records] == [("MON", 1), ("TUE", 2)]

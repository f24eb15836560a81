from timegrid.schemas.generator import GenerateTimetableRequest, GenerationSettings
from timegrid.schemas.settings import BreakTimeEntry
from timegrid.services.normalizer import normalize_request


def subject(subject_id, name, hours=3, **extra):
    return {"id": subject_id, "code": subject_id.upper(), "name": name, "hours_per_week": hours, **extra}


def faculty(faculty_id, name="Prof", **extra):
    return {"id": faculty_id, "name": name, **extra}


def test_empty_subjects_are_fatal():
    result = normalize_request(GenerateTimetableRequest(faculty=[faculty("f1")]), GenerationSettings())
    assert result.context is None
    assert result.fatal is not None
    assert result.fatal.severity == "critical"
    assert result.fatal.conflict_type == "coverage"
    assert "subjects" in result.fatal.description


def test_empty_faculty_is_fatal():
    result = normalize_request(GenerateTimetableRequest(subjects=[subject("s1", "Maths")]), GenerationSettings())
    assert result.context is None
    assert "faculty" in result.fatal.description


def test_duplicate_ids_keep_first_record():
    request = GenerateTimetableRequest(
        subjects=[subject("s1", "Maths"), subject("s1", "Physics")],
        faculty=[faculty("f1"), faculty("f1", "Other")],
    )
    context = normalize_request(request, GenerationSettings()).context
    assert [item.name for item in context.subjects] == ["Maths"]
    assert len(context.faculty) == 1


def test_mandatory_subjects_detected_by_name_and_code():
    request = GenerateTimetableRequest(
        subjects=[
            subject("s1", "Library Hour", 1),
            subject("s2", "Student Counselling", 1),
            subject("s3", "Orientation", 1, code="SEM101"),
            subject("s4", "Maths"),
            subject("s5", "Mentoring", 1, is_mandatory=True),
        ],
        faculty=[faculty("f1")],
    )
    context = normalize_request(request, GenerationSettings()).context
    flags = {item.id: (item.is_mandatory, item.mandatory_rank) for item in context.subjects}
    assert flags["s1"] == (True, 0)
    assert flags["s2"] == (True, 1)
    assert flags["s3"] == (True, 2)
    assert flags["s4"] == (False, None)
    assert flags["s5"] == (True, 4)


def test_faculty_caps_fall_back_to_settings_and_daily_never_exceeds_weekly():
    request = GenerateTimetableRequest(
        subjects=[subject("s1", "Maths")],
        faculty=[faculty("f1"), faculty("f2", max_hours_per_week=4, max_hours_per_day=6)],
    )
    context = normalize_request(request, GenerationSettings(max_faculty_hours_per_week=18)).context
    assert context.faculty_member("f1").max_hours_per_week == 18
    assert context.faculty_member("f1").max_hours_per_day == 6
    assert context.faculty_member("f2").max_hours_per_day == 4


def test_default_rooms_only_when_enabled():
    records = {"subjects": [subject("s1", "Maths")], "faculty": [faculty("f1")]}
    without = normalize_request(GenerateTimetableRequest(**records), GenerationSettings()).context
    with_defaults = normalize_request(
        GenerateTimetableRequest(**records), GenerationSettings(use_default_rooms=True)
    ).context
    assert without.rooms == ()
    assert [room.name for room in with_defaults.rooms] == ["Lab 101", "Theory 201", "Lab 301"]


def test_short_breaks_are_dropped_and_lunch_sets_midday_slot():
    request = GenerateTimetableRequest(
        subjects=[subject("s1", "Maths")],
        faculty=[faculty("f1")],
        break_times=[
            BreakTimeEntry(name="Tea", start_time="10:50", end_time="11:00", break_type="short"),
            BreakTimeEntry(name="Lunch", start_time="13:55", end_time="14:50", break_type="lunch"),
        ],
    )
    context = normalize_request(request, GenerationSettings(min_break_duration=15)).context
    assert [window.name for window in context.break_windows] == ["Lunch"]
    assert context.midday_break_slot == 4


def test_commitments_for_unknown_records_are_dropped():
    request = GenerateTimetableRequest(
        subjects=[subject("s1", "Maths")],
        faculty=[faculty("f1")],
        commitments=[
            {"faculty_id": "f1", "day": "Monday", "slot": 2},
            {"faculty_id": "ghost", "day": "TUE", "slot": 0},
            {"room_id": "nowhere", "day": "WED", "slot": 1},
        ],
    )
    context = normalize_request(request, GenerationSettings()).context
    assert context.faculty_committed("f1", 0, 2)
    assert context.faculty_commitments == frozenset({("f1", 0, 2)})
    assert context.room_commitments == frozenset()


def test_invalid_locks_become_low_severity_issues():
    request = GenerateTimetableRequest(
        subjects=[subject("s1", "Maths"), subject("lib", "Library", 1)],
        faculty=[faculty("f1")],
        locked_sessions=[
            {"subject_id": "s1", "faculty_id": "f1", "day": "MON", "slot": 0},
            {"subject_id": "s1", "faculty_id": "f1", "day": "MON", "slot": 0},
            {"subject_id": "lib", "faculty_id": "f1", "day": "MON", "slot": 1},
            {"subject_id": "missing", "faculty_id": "f1", "day": "TUE", "slot": 1},
        ],
    )
    result = normalize_request(request, GenerationSettings())
    assert len(result.context.locked_sessions) == 1
    assert len(result.issues) == 3
    assert all(issue.severity == "low" for issue in result.issues)
    assert all(issue.conflict_type == "coverage" for issue in result.issues)
    assert any("outside the subject's placement window" in issue.description for issue in result.issues)


def test_lab_locks_that_would_split_the_day_are_rejected():
    request = GenerateTimetableRequest(
        subjects=[subject("lab", "Networks Lab", 4, type="lab")],
        faculty=[faculty("f1", specialization=["lab"])],
        locked_sessions=[
            {"subject_id": "lab", "faculty_id": "f1", "day": "MON", "slot": 0},
            {"subject_id": "lab", "faculty_id": "f1", "day": "MON", "slot": 2},
            {"subject_id": "lab", "faculty_id": "f1", "day": "MON", "slot": 1},
            {"subject_id": "lab", "faculty_id": "f1", "day": "TUE", "slot": 4},
        ],
    )
    result = normalize_request(request, GenerationSettings())
    kept = sorted((item.day, item.slot) for item in result.context.locked_sessions)
    assert kept == [(0, 0), (0, 1), (1, 4)]
    assert len(result.issues) == 1
    assert result.issues[0].severity == "low"
    assert result.issues[0].affected_cells == ["MON-2"]
    assert "split the lab run on MON" in result.issues[0].description


def test_short_and_custom_breaks_reserve_cells_outside_the_mandatory_window():
    request = GenerateTimetableRequest(
        subjects=[subject("s1", "Maths")],
        faculty=[faculty("f1")],
        break_times=[
            BreakTimeEntry(name="Tea", start_time="09:55", end_time="10:50", break_type="short"),
            BreakTimeEntry(name="Assembly", start_time="15:55", end_time="16:50", break_type="custom"),
            BreakTimeEntry(name="Lunch", start_time="12:00", end_time="12:55", break_type="lunch"),
        ],
    )
    context = normalize_request(request, GenerationSettings()).context
    assert all((day, 1) in context.break_cells for day in range(6))
    assert all((day, 6) in context.break_cells for day in range(5))
    assert (5, 6) not in context.break_cells
    assert all((day, 3) not in context.break_cells for day in range(6))
    assert context.midday_break_slot == 3

    disabled = normalize_request(request, GenerationSettings(enable_break_management=False)).context
    assert disabled.break_cells == frozenset()


def test_locks_on_reserved_break_cells_are_rejected():
    request = GenerateTimetableRequest(
        subjects=[subject("s1", "Maths")],
        faculty=[faculty("f1")],
        break_times=[BreakTimeEntry(name="Tea", start_time="09:55", end_time="10:50", break_type="short")],
        locked_sessions=[{"subject_id": "s1", "faculty_id": "f1", "day": "WED", "slot": 1}],
    )
    result = normalize_request(request, GenerationSettings())
    assert result.context.locked_sessions == ()
    assert "reserved for a break" in result.issues[0].description

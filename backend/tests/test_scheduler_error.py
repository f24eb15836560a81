import pytest

from timegrid.core.exceptions import AppError, ConfigurationError, SchedulerError
from timegrid.services.grid import Grid, SessionAssignment


def test_scheduler_error_structure():
    err = SchedulerError(message="Test error", details={"foo": "bar"})
    assert err.status_code == 400
    assert err.message == "Test error"
    assert err.details == {"foo": "bar"}
    assert isinstance(err, AppError)


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.details == {}


def test_configuration_error_is_server_side():
    err = ConfigurationError("bad defaults")
    assert err.status_code == 500
    assert isinstance(err, AppError)


def test_writing_an_occupied_cell_raises_scheduler_error():
    grid = Grid()
    session = SessionAssignment(subject_id="s1", faculty_id="f1", session_type="theory")
    grid.place(0, 0, session)
    with pytest.raises(SchedulerError) as excinfo:
        grid.place(0, 0, session)
    assert excinfo.value.details["cell"] == "MON-0"


def test_cells_outside_the_week_raise_scheduler_error():
    grid = Grid()
    with pytest.raises(SchedulerError):
        grid.get(6, 0)
    with pytest.raises(SchedulerError):
        grid.get(0, 10)

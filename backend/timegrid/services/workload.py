from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from timegrid.services.context import FacultySpec
    from timegrid.services.grid import Grid

COLLEAGUE_UTILIZATION_THRESHOLD = 0.8


def constrained_weekly_cap(requested_max_hours: int | None, default_cap: int) -> int:
    if requested_max_hours is None:
        return max(1, default_cap)
    if requested_max_hours < 1:
        return 1
    return requested_max_hours


def constrained_daily_cap(requested_max_hours: int | None, default_cap: int, weekly_cap: int) -> int:
    cap = default_cap if requested_max_hours is None else requested_max_hours
    return max(1, min(cap, weekly_cap))


def utilization_percent(assigned_hours: int, cap: int) -> float:
    if cap <= 0:
        return 0.0
    return round(assigned_hours / cap * 100, 2)


def has_headroom(assigned_hours: int, cap: int, *, threshold: float = COLLEAGUE_UTILIZATION_THRESHOLD) -> bool:
    return assigned_hours < cap * threshold


def fits_caps(faculty: "FacultySpec", grid: "Grid", day: int, *, extra_hours: int = 1) -> bool:
    weekly = grid.faculty_load()[faculty.id]
    if weekly + extra_hours > faculty.max_hours_per_week:
        return False
    daily = grid.faculty_day_load()[(faculty.id, day)]
    return daily + extra_hours <= faculty.max_hours_per_day


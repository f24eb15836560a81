from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DAY_VALUES = ("MON", "TUE", "WED", "THU", "FRI", "SAT")

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DEFAULT_LUNCH_BREAK_NAME = "Lunch Break"
DEFAULT_LUNCH_START = "12:00"
DEFAULT_LUNCH_END = "12:55"


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def normalize_day_value(value: str) -> str:
    day = value.strip().upper()[:3]
    if day not in DAY_VALUES:
        raise ValueError("Invalid day value")
    return day


class BreakTimeEntry(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    start_time: str
    end_time: str
    duration: int | None = Field(default=None, ge=1, le=240)
    break_type: Literal["lunch", "short", "custom"] = "custom"

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_time_order(self) -> "BreakTimeEntry":
        start = parse_time_to_minutes(self.start_time)
        end = parse_time_to_minutes(self.end_time)
        if end <= start:
            raise ValueError("Break end time must be after start time")
        if self.duration is None:
            self.duration = end - start
        return self


DEFAULT_BREAK_TIMES = [
    BreakTimeEntry(
        name=DEFAULT_LUNCH_BREAK_NAME,
        start_time=DEFAULT_LUNCH_START,
        end_time=DEFAULT_LUNCH_END,
        break_type="lunch",
    ),
    BreakTimeEntry(name="Short Break", start_time="15:55", end_time="16:50", break_type="short"),
]

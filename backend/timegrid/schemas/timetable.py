from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from timegrid.schemas.settings import normalize_day_value

SessionType = Literal["theory", "lab", "practical", "tutorial"]


class SubjectPayload(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    type: SessionType = "theory"
    hours_per_week: int = Field(default=3, ge=0, le=40)
    is_mandatory: bool = False
    department: str | None = Field(default=None, max_length=200)
    year: int | None = Field(default=None, ge=1, le=8)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class FacultyPayload(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    specialization: list[str] = Field(default_factory=list)
    department: str | None = Field(default=None, max_length=200)
    max_hours_per_week: int | None = Field(default=None, ge=1, le=60)
    max_hours_per_day: int | None = Field(default=None, ge=1, le=10)

    @field_validator("specialization", mode="before")
    @classmethod
    def split_specialization(cls, value: str | list[str] | None) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class RoomPayload(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    capacity: int = Field(ge=1, le=2000)
    equipment: list[str] = Field(default_factory=list)
    room_type: str | None = Field(default=None, max_length=50)


class CommitmentPayload(BaseModel):
    """A faculty member or room already booked by another section."""

    faculty_id: str | None = Field(default=None, min_length=1, max_length=64)
    room_id: str | None = Field(default=None, min_length=1, max_length=64)
    day: str
    slot: int = Field(ge=0, le=9)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return normalize_day_value(value)

    @model_validator(mode="after")
    def validate_target(self) -> "CommitmentPayload":
        if (self.faculty_id is None) == (self.room_id is None):
            raise ValueError("Exactly one of faculty_id or room_id is required")
        return self


class LockedSessionPayload(BaseModel):
    subject_id: str = Field(min_length=1, max_length=64)
    faculty_id: str = Field(min_length=1, max_length=64)
    day: str
    slot: int = Field(ge=0, le=9)
    room_id: str | None = Field(default=None, min_length=1, max_length=64)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return normalize_day_value(value)


class GridCellOut(BaseModel):
    day: str
    slot: int
    time_label: str
    is_break: bool = False
    subject_id: str | None = None
    subject_code: str | None = None
    subject_name: str | None = None
    faculty_id: str | None = None
    faculty_name: str | None = None
    room_id: str | None = None
    session_type: SessionType | None = None
    is_mandatory: bool = False


class TimetableGridOut(BaseModel):
    days: list[str]
    time_slots: list[str]
    cells: list[GridCellOut] = Field(default_factory=list)


class RoomAssignmentOut(BaseModel):
    subject_id: str
    subject_name: str
    room_id: str
    room_name: str
    day: str
    slot: int
    time_label: str
    capacity: int
    utilization: int

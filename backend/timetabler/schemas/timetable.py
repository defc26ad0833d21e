from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from timetabler.models.timetable import AttendanceStatus, DayOfWeek
from timetabler.schemas.common import SUBCLASS_LETTER_PATTERN, TIME_PATTERN


def _validate_letter(value: str | None) -> str | None:
    if value is not None and not SUBCLASS_LETTER_PATTERN.match(value):
        raise ValueError("Subclass letter must be a single uppercase letter")
    return value


def _validate_time(value: str | None) -> str | None:
    if value is not None and not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    return value


class TimetableEntryCreate(BaseModel):
    class_level_id: str = Field(min_length=1, max_length=36)
    subclass_letter: str
    subject_id: str = Field(min_length=1, max_length=36)
    teacher_id: str | None = Field(default=None, max_length=36)
    day_of_week: DayOfWeek
    start_time: str
    number_of_periods: int = Field(ge=1, le=12)
    location: str = Field(min_length=1, max_length=200)
    academic_year_id: str | None = None

    @field_validator("subclass_letter")
    @classmethod
    def validate_subclass_letter(cls, value: str | None) -> str | None:
        return _validate_letter(value)

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: str | None) -> str | None:
        return _validate_time(value)


class TimetableEntryUpdate(BaseModel):
    class_level_id: str | None = Field(default=None, min_length=1, max_length=36)
    subclass_letter: str | None = None
    subject_id: str | None = Field(default=None, min_length=1, max_length=36)
    teacher_id: str | None = Field(default=None, max_length=36)
    day_of_week: DayOfWeek | None = None
    start_time: str | None = None
    number_of_periods: int | None = Field(default=None, ge=1, le=12)
    location: str | None = Field(default=None, min_length=1, max_length=200)
    academic_year_id: str | None = None

    @field_validator("subclass_letter")
    @classmethod
    def validate_subclass_letter(cls, value: str | None) -> str | None:
        return _validate_letter(value)

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: str | None) -> str | None:
        return _validate_time(value)


class AttendanceRecordIn(BaseModel):
    student_id: str = Field(min_length=1, max_length=36)
    status: AttendanceStatus
    notes: str | None = Field(default=None, max_length=200)

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class AttendanceRecordOut(BaseModel):
    student_id: str
    status: AttendanceStatus
    notes: str | None = None

    model_config = {"from_attributes": True}


class MarkAttendanceRequest(BaseModel):
    records: list[AttendanceRecordIn] = Field(default_factory=list, max_length=200)


class PeriodOut(BaseModel):
    period_index: int
    date: datetime | None = None

    model_config = {"from_attributes": True}


class PeriodAttendanceOut(PeriodOut):
    entry_id: str
    attendance: list[AttendanceRecordOut] = Field(default_factory=list)


class TimetableEntryOut(BaseModel):
    id: str
    class_level_id: str
    subclass_letter: str
    subject_id: str
    teacher_id: str | None = None
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    number_of_periods: int
    location: str
    academic_year_id: str
    periods: list[PeriodOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class AttendanceRateOut(BaseModel):
    scope: str
    scope_id: str
    attendance_rate: float


class DeleteEntryOut(BaseModel):
    success: bool = True
    students_refreshed: int

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from timetabler.core.exceptions import ScheduleConflictError, ScheduleValidationError
from timetabler.models.timetable import DayOfWeek, TimetableEntry
from timetabler.schemas.common import MINUTES_PER_DAY, format_minutes, parse_time_to_minutes
from timetabler.schemas.conflict import ConflictDetail


class ScheduledEntry(Protocol):
    id: str
    class_level_id: str
    subclass_letter: str
    subject_id: str
    teacher_id: str | None
    day_of_week: DayOfWeek
    start_time: str
    number_of_periods: int
    academic_year_id: str


@dataclass(frozen=True)
class Placement:
    class_level_id: str
    subclass_letter: str
    subject_id: str
    day_of_week: DayOfWeek
    start_time: str
    number_of_periods: int
    academic_year_id: str
    teacher_id: str | None = None


def _start_minutes(start_time: str) -> int:
    try:
        return parse_time_to_minutes(start_time)
    except ValueError as exc:
        raise ScheduleValidationError(str(exc), details={"start_time": start_time}) from exc


def compute_end_minutes(start_time: str, number_of_periods: int, period_minutes: int) -> int:
    if number_of_periods < 1:
        raise ScheduleValidationError(
            "number_of_periods must be a positive integer",
            details={"number_of_periods": number_of_periods},
        )
    end = _start_minutes(start_time) + number_of_periods * period_minutes
    # 24:00 is not representable as HH:MM, so it is rejected along with anything later.
    if end >= MINUTES_PER_DAY:
        raise ScheduleValidationError(
            f"{number_of_periods} period(s) from {start_time} would run past midnight",
            details={"start_time": start_time, "number_of_periods": number_of_periods},
        )
    return end


def compute_end_time(start_time: str, number_of_periods: int, period_minutes: int) -> str:
    return format_minutes(compute_end_minutes(start_time, number_of_periods, period_minutes))


def validate_school_day(
    start_time: str,
    number_of_periods: int,
    *,
    period_minutes: int,
    day_start: str,
    day_end: str,
) -> None:
    start = _start_minutes(start_time)
    end = compute_end_minutes(start_time, number_of_periods, period_minutes)
    opens = parse_time_to_minutes(day_start)
    closes = parse_time_to_minutes(day_end)
    if start < opens or start > closes:
        raise ScheduleValidationError(
            f"Start time must be between {day_start} and {day_end}",
            details={"start_time": start_time},
        )
    if end > closes:
        raise ScheduleValidationError(
            f"End time cannot exceed {day_end}",
            details={"end_time": format_minutes(end)},
        )


def windows_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Inclusive on both bounds: a class ending at 09:30 collides with one starting at 09:30.
    return start_a <= end_b and start_b <= end_a


def _entry_window(entry: ScheduledEntry, period_minutes: int) -> tuple[int, int]:
    start = parse_time_to_minutes(entry.start_time)
    return start, start + entry.number_of_periods * period_minutes


def _conflict(conflict_type: str, entry: ScheduledEntry, window: tuple[int, int]) -> ConflictDetail:
    start_time = format_minutes(window[0])
    end_time = format_minutes(min(window[1], MINUTES_PER_DAY - 1))
    day = DayOfWeek(entry.day_of_week).value
    if conflict_type == "class_conflict":
        description = (
            f"Subject {entry.subject_id} is already scheduled for class {entry.class_level_id} "
            f"{entry.subclass_letter} on {day} {start_time}-{end_time}"
        )
    else:
        description = f"Teacher {entry.teacher_id} is already scheduled on {day} {start_time}-{end_time}"
    return ConflictDetail(
        conflict_type=conflict_type,
        entry_id=entry.id,
        subject_id=entry.subject_id,
        teacher_id=entry.teacher_id,
        class_level_id=entry.class_level_id,
        subclass_letter=entry.subclass_letter,
        day=day,
        start_time=start_time,
        end_time=end_time,
        description=description,
    )


def find_conflicts(
    placement: Placement,
    existing: Iterable[ScheduledEntry],
    *,
    period_minutes: int,
    exclude_entry_id: str | None = None,
) -> list[ConflictDetail]:
    start = _start_minutes(placement.start_time)
    end = compute_end_minutes(placement.start_time, placement.number_of_periods, period_minutes)
    day = DayOfWeek(placement.day_of_week)

    conflicts: list[ConflictDetail] = []
    for entry in existing:
        if exclude_entry_id is not None and entry.id == exclude_entry_id:
            continue
        if entry.academic_year_id != placement.academic_year_id or DayOfWeek(entry.day_of_week) != day:
            continue
        window = _entry_window(entry, period_minutes)
        if not windows_overlap(start, end, *window):
            continue

        same_class = (
            entry.class_level_id == placement.class_level_id
            and entry.subclass_letter == placement.subclass_letter
        )
        if same_class and entry.subject_id != placement.subject_id:
            conflicts.append(_conflict("class_conflict", entry, window))
        if placement.teacher_id and entry.teacher_id == placement.teacher_id:
            conflicts.append(_conflict("teacher_conflict", entry, window))
    return conflicts


def load_candidate_entries(db: Session, placement: Placement) -> list[TimetableEntry]:
    scopes = [
        and_(
            TimetableEntry.class_level_id == placement.class_level_id,
            TimetableEntry.subclass_letter == placement.subclass_letter,
        )
    ]
    if placement.teacher_id:
        scopes.append(TimetableEntry.teacher_id == placement.teacher_id)
    statement = select(TimetableEntry).where(
        TimetableEntry.academic_year_id == placement.academic_year_id,
        TimetableEntry.day_of_week == DayOfWeek(placement.day_of_week),
        or_(*scopes),
    )
    return list(db.execute(statement).scalars())


def ensure_no_conflicts(
    db: Session,
    placement: Placement,
    *,
    period_minutes: int,
    exclude_entry_id: str | None = None,
) -> None:
    conflicts = find_conflicts(
        placement,
        load_candidate_entries(db, placement),
        period_minutes=period_minutes,
        exclude_entry_id=exclude_entry_id,
    )
    if conflicts:
        raise ScheduleConflictError(
            f"Conflict: {conflicts[0].description}",
            conflicts=[item.model_dump() for item in conflicts],
        )

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from timetabler.core.config import Settings
from timetabler.core.exceptions import (
    AccessDeniedError,
    AcademicScopeError,
    NotAssignedError,
    ResourceNotFoundError,
    ScheduleValidationError,
)
from timetabler.core.security import Caller, UserRole
from timetabler.models.class_level import ClassLevel
from timetabler.models.student import Student
from timetabler.models.subject import Subject, SubjectAssignment
from timetabler.models.teacher import Teacher
from timetabler.models.timetable import AttendanceRecord, DayOfWeek, TimetableEntry, TimetablePeriod
from timetabler.schemas.common import SCHOOL_DAYS
from timetabler.schemas.timetable import AttendanceRecordIn, TimetableEntryCreate, TimetableEntryUpdate
from timetabler.services.attendance import refresh_student_rates
from timetabler.services.audit import log_activity
from timetabler.services.calendar import ensure_current_year_scope, get_current_year
from timetabler.services.conflicts import Placement, compute_end_time, ensure_no_conflicts, validate_school_day
from timetabler.services.scope_locks import placement_scope_keys, scope_locks

logger = logging.getLogger(__name__)

DAY_ORDER = {day: index for index, day in enumerate(SCHOOL_DAYS)}


@dataclass(frozen=True)
class SchedulingPolicy:
    period_minutes: int = 45
    day_start: str = "07:00"
    day_end: str = "18:00"

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulingPolicy":
        return cls(
            period_minutes=settings.period_minutes,
            day_start=settings.school_day_start,
            day_end=settings.school_day_end,
        )


def _sorted_entries(entries) -> list[TimetableEntry]:
    return sorted(entries, key=lambda entry: (DAY_ORDER[DayOfWeek(entry.day_of_week).value], entry.start_time))


def _get_entry(db: Session, entry_id: str) -> TimetableEntry:
    entry = db.get(TimetableEntry, entry_id)
    if entry is None:
        raise ResourceNotFoundError("TimetableEntry", entry_id)
    return entry


def _get_class_level(db: Session, class_level_id: str, subclass_letter: str) -> ClassLevel:
    class_level = db.get(ClassLevel, class_level_id)
    if class_level is None:
        raise ResourceNotFoundError("ClassLevel", class_level_id)
    if not class_level.has_subclass(subclass_letter):
        raise ResourceNotFoundError(
            "Subclass",
            f"{class_level_id}/{subclass_letter}",
            message=f"Subclass {subclass_letter} not found for ClassLevel {class_level.name}",
        )
    return class_level


def _get_assignment(db: Session, subject_id: str, class_level: ClassLevel, subclass_letter: str) -> SubjectAssignment:
    subject = db.get(Subject, subject_id)
    if subject is None:
        raise ResourceNotFoundError("Subject", subject_id)
    assignment = subject.assignment_for(class_level.id, subclass_letter)
    if assignment is None:
        raise ScheduleValidationError(
            f"Subject {subject.name} is not assigned to {class_level.name} {subclass_letter}",
            details={"subject_id": subject_id, "class_level_id": class_level.id, "subclass_letter": subclass_letter},
        )
    return assignment


def _validate_placement(db: Session, placement: Placement, policy: SchedulingPolicy) -> None:
    validate_school_day(
        placement.start_time,
        placement.number_of_periods,
        period_minutes=policy.period_minutes,
        day_start=policy.day_start,
        day_end=policy.day_end,
    )
    class_level = _get_class_level(db, placement.class_level_id, placement.subclass_letter)
    assignment = _get_assignment(db, placement.subject_id, class_level, placement.subclass_letter)
    if placement.teacher_id is None:
        return
    if db.get(Teacher, placement.teacher_id) is None:
        raise ResourceNotFoundError("Teacher", placement.teacher_id)
    if placement.teacher_id not in (assignment.teacher_ids or []):
        raise ScheduleValidationError(
            f"Teacher is not assigned to subject {assignment.subject.name} "
            f"for {class_level.name} {placement.subclass_letter}",
            details={"teacher_id": placement.teacher_id, "subject_id": placement.subject_id},
        )


def _entry_snapshot(entry: TimetableEntry) -> dict:
    return {
        "class_level_id": entry.class_level_id,
        "subclass_letter": entry.subclass_letter,
        "subject_id": entry.subject_id,
        "teacher_id": entry.teacher_id,
        "day_of_week": DayOfWeek(entry.day_of_week).value,
        "start_time": entry.start_time,
        "end_time": entry.end_time,
        "number_of_periods": entry.number_of_periods,
    }


def create_entry(
    db: Session,
    payload: TimetableEntryCreate,
    *,
    policy: SchedulingPolicy,
    caller: Caller | None = None,
) -> TimetableEntry:
    current_year = get_current_year(db)
    ensure_current_year_scope(current_year, payload.academic_year_id)

    placement = Placement(
        class_level_id=payload.class_level_id,
        subclass_letter=payload.subclass_letter,
        subject_id=payload.subject_id,
        day_of_week=payload.day_of_week,
        start_time=payload.start_time,
        number_of_periods=payload.number_of_periods,
        academic_year_id=current_year.id,
        teacher_id=payload.teacher_id,
    )
    _validate_placement(db, placement, policy)

    with scope_locks.hold(placement_scope_keys(placement)):
        ensure_no_conflicts(db, placement, period_minutes=policy.period_minutes)
        entry = TimetableEntry(
            class_level_id=placement.class_level_id,
            subclass_letter=placement.subclass_letter,
            subject_id=placement.subject_id,
            teacher_id=placement.teacher_id,
            day_of_week=placement.day_of_week,
            start_time=placement.start_time,
            end_time=compute_end_time(placement.start_time, placement.number_of_periods, policy.period_minutes),
            number_of_periods=placement.number_of_periods,
            location=payload.location,
            academic_year_id=current_year.id,
            periods=[TimetablePeriod(period_index=index) for index in range(placement.number_of_periods)],
        )
        db.add(entry)
        db.flush()
        log_activity(
            db,
            caller=caller,
            action="timetable.create",
            entity_type="timetable_entry",
            entity_id=entry.id,
            details=_entry_snapshot(entry),
        )
        db.commit()
    db.refresh(entry)
    return entry


def update_entry(
    db: Session,
    entry_id: str,
    payload: TimetableEntryUpdate,
    *,
    policy: SchedulingPolicy,
    caller: Caller | None = None,
) -> TimetableEntry:
    current_year = get_current_year(db)
    ensure_current_year_scope(current_year, payload.academic_year_id)

    entry = _get_entry(db, entry_id)
    if entry.academic_year_id != current_year.id:
        raise AcademicScopeError(
            "Timetables can only be updated for the current academic year",
            details={"current_academic_year_id": current_year.id, "academic_year_id": entry.academic_year_id},
        )

    data = payload.model_dump(exclude_unset=True)
    data.pop("academic_year_id", None)
    for required in ("class_level_id", "subclass_letter", "subject_id", "day_of_week", "start_time",
                     "number_of_periods", "location"):
        if required in data and data[required] is None:
            raise ScheduleValidationError(f"{required} cannot be cleared", details={"field": required})

    placement = Placement(
        class_level_id=data.get("class_level_id", entry.class_level_id),
        subclass_letter=data.get("subclass_letter", entry.subclass_letter),
        subject_id=data.get("subject_id", entry.subject_id),
        day_of_week=data.get("day_of_week", entry.day_of_week),
        start_time=data.get("start_time", entry.start_time),
        number_of_periods=data.get("number_of_periods", entry.number_of_periods),
        academic_year_id=current_year.id,
        teacher_id=data["teacher_id"] if "teacher_id" in data else entry.teacher_id,
    )
    _validate_placement(db, placement, policy)

    before = _entry_snapshot(entry)
    with scope_locks.hold(placement_scope_keys(placement)):
        ensure_no_conflicts(db, placement, period_minutes=policy.period_minutes, exclude_entry_id=entry.id)

        previous_count = entry.number_of_periods
        entry.class_level_id = placement.class_level_id
        entry.subclass_letter = placement.subclass_letter
        entry.subject_id = placement.subject_id
        entry.teacher_id = placement.teacher_id
        entry.day_of_week = placement.day_of_week
        entry.start_time = placement.start_time
        entry.number_of_periods = placement.number_of_periods
        entry.end_time = compute_end_time(placement.start_time, placement.number_of_periods, policy.period_minutes)
        if "location" in data:
            entry.location = data["location"]

        dropped_students: set[str] = set()
        if placement.number_of_periods != previous_count:
            for period in list(entry.periods):
                if period.period_index >= placement.number_of_periods:
                    dropped_students.update(record.student_id for record in period.attendance)
                    entry.periods.remove(period)
            for index in range(previous_count, placement.number_of_periods):
                entry.periods.append(TimetablePeriod(period_index=index))
        db.flush()
        if dropped_students:
            refresh_student_rates(db, dropped_students)

        log_activity(
            db,
            caller=caller,
            action="timetable.update",
            entity_type="timetable_entry",
            entity_id=entry.id,
            details={"before": before, "after": _entry_snapshot(entry)},
        )
        db.commit()
    db.refresh(entry)
    return entry


def delete_entry(db: Session, entry_id: str, *, caller: Caller | None = None) -> int:
    """Delete an entry and refresh the cached rate of every student on its rolls.

    Returns the number of students whose rate was refreshed.
    """
    entry = _get_entry(db, entry_id)
    student_ids = {record.student_id for period in entry.periods for record in period.attendance}
    snapshot = _entry_snapshot(entry)

    db.delete(entry)
    db.flush()
    refreshed = refresh_student_rates(db, sorted(student_ids))
    if refreshed < len(student_ids):
        logger.warning(
            "Refreshed %d of %d student attendance rates after deleting timetable entry %s",
            refreshed,
            len(student_ids),
            entry_id,
        )
    log_activity(
        db,
        caller=caller,
        action="timetable.delete",
        entity_type="timetable_entry",
        entity_id=entry_id,
        details=snapshot,
    )
    db.commit()
    return refreshed


def _ensure_can_take_register(db: Session, entry: TimetableEntry, caller: Caller | None) -> None:
    if caller is None or caller.role == UserRole.admin:
        return
    if caller.role == UserRole.teacher:
        if entry.teacher_id == caller.id:
            return
        subject = db.get(Subject, entry.subject_id)
        assignment = subject.assignment_for(entry.class_level_id, entry.subclass_letter) if subject else None
        if assignment is not None and caller.id in (assignment.teacher_ids or []):
            return
    raise AccessDeniedError("You are not assigned to this class and subject")


def _get_period(entry: TimetableEntry, period_index: int) -> TimetablePeriod:
    if not 0 <= period_index < entry.number_of_periods:
        raise ScheduleValidationError(
            f"Invalid period index: {period_index}",
            details={"period_index": period_index, "number_of_periods": entry.number_of_periods},
        )
    period = entry.period_at(period_index)
    if period is None:
        raise ResourceNotFoundError("TimetablePeriod", f"{entry.id}/{period_index}")
    return period


def mark_attendance(
    db: Session,
    entry_id: str,
    period_index: int,
    records: list[AttendanceRecordIn],
    *,
    caller: Caller | None = None,
    now: datetime | None = None,
) -> TimetablePeriod:
    """Replace a period's attendance roll and stamp the period with ``now``."""
    entry = _get_entry(db, entry_id)
    period = _get_period(entry, period_index)
    _ensure_can_take_register(db, entry, caller)

    student_ids = [record.student_id for record in records]
    duplicates = sorted({student_id for student_id in student_ids if student_ids.count(student_id) > 1})
    if duplicates:
        raise ScheduleValidationError("Duplicate students in attendance roll", details={"student_ids": duplicates})

    if student_ids:
        enrolled = set(
            db.execute(
                select(Student.id).where(
                    Student.id.in_(student_ids),
                    Student.class_level_id == entry.class_level_id,
                    Student.subclass_letter == entry.subclass_letter,
                )
            ).scalars()
        )
        outsiders = [student_id for student_id in student_ids if student_id not in enrolled]
        if outsiders:
            raise ScheduleValidationError(
                f"Student {outsiders[0]} is not in subclass {entry.subclass_letter} of this class",
                details={"student_ids": outsiders},
            )

    affected = {record.student_id for record in period.attendance} | set(student_ids)
    period.attendance.clear()
    # Old rows must be gone before re-inserting the same students.
    db.flush()
    for position, record in enumerate(records):
        period.attendance.append(
            AttendanceRecord(
                position=position,
                student_id=record.student_id,
                status=record.status,
                notes=record.notes,
            )
        )
    period.date = now or datetime.now(timezone.utc)
    db.flush()

    refresh_student_rates(db, sorted(affected))
    log_activity(
        db,
        caller=caller,
        action="timetable.attendance",
        entity_type="timetable_entry",
        entity_id=entry.id,
        details={"period_index": period_index, "records": len(records)},
    )
    db.commit()
    db.refresh(period)
    return period


def get_period_attendance(
    db: Session,
    entry_id: str,
    period_index: int,
    *,
    caller: Caller | None = None,
) -> TimetablePeriod:
    entry = _get_entry(db, entry_id)
    period = _get_period(entry, period_index)
    _ensure_can_take_register(db, entry, caller)
    return period


def list_for_class(
    db: Session,
    class_level_id: str,
    subclass_letter: str,
    subject_id: str | None = None,
) -> list[TimetableEntry]:
    current_year = get_current_year(db)
    class_level = _get_class_level(db, class_level_id, subclass_letter)
    statement = select(TimetableEntry).where(
        TimetableEntry.academic_year_id == current_year.id,
        TimetableEntry.class_level_id == class_level.id,
        TimetableEntry.subclass_letter == subclass_letter,
    )
    if subject_id is not None:
        _get_assignment(db, subject_id, class_level, subclass_letter)
        statement = statement.where(TimetableEntry.subject_id == subject_id)
    return _sorted_entries(db.execute(statement).scalars())


def list_for_teacher(db: Session, teacher_id: str) -> list[TimetableEntry]:
    if db.get(Teacher, teacher_id) is None:
        raise ResourceNotFoundError("Teacher", teacher_id)
    assignments = [
        assignment
        for assignment in db.execute(select(SubjectAssignment)).scalars()
        if teacher_id in (assignment.teacher_ids or [])
    ]
    if not assignments:
        raise NotAssignedError("No subjects assigned to this teacher", details={"teacher_id": teacher_id})

    current_year = get_current_year(db)
    scopes = [TimetableEntry.teacher_id == teacher_id]
    scopes.extend(
        and_(
            TimetableEntry.class_level_id == assignment.class_level_id,
            TimetableEntry.subclass_letter == assignment.subclass_letter,
            TimetableEntry.subject_id == assignment.subject_id,
        )
        for assignment in assignments
    )
    statement = select(TimetableEntry).where(
        TimetableEntry.academic_year_id == current_year.id,
        or_(*scopes),
    )
    return _sorted_entries(db.execute(statement).scalars())


def list_for_student(db: Session, student_id: str) -> list[TimetableEntry]:
    student = db.get(Student, student_id)
    if student is None:
        raise ResourceNotFoundError("Student", student_id)
    if not student.class_level_id or not student.subclass_letter:
        raise NotAssignedError(
            "Student is not assigned to a class or subclass",
            details={"student_id": student_id},
        )
    return list_for_class(db, student.class_level_id, student.subclass_letter)

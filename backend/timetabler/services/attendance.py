from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from timetabler.core.exceptions import ResourceNotFoundError
from timetabler.models.student import Student
from timetabler.models.timetable import (
    ATTENDED_STATUSES,
    AttendanceRecord,
    AttendanceStatus,
    TimetableEntry,
    TimetablePeriod,
)

logger = logging.getLogger(__name__)


def attendance_percentage(statuses: Iterable[AttendanceStatus]) -> float:
    total = 0
    attended = 0
    for status in statuses:
        total += 1
        if AttendanceStatus(status) in ATTENDED_STATUSES:
            attended += 1
    if total == 0:
        return 0.0
    return round(attended / total * 100, 2)


def _statuses_for_class(db: Session, class_level_id: str, subclass_letter: str):
    return (
        select(AttendanceRecord.status)
        .join(TimetablePeriod, AttendanceRecord.period_id == TimetablePeriod.id)
        .join(TimetableEntry, TimetablePeriod.entry_id == TimetableEntry.id)
        .where(
            TimetableEntry.class_level_id == class_level_id,
            TimetableEntry.subclass_letter == subclass_letter,
        )
    )


def rate_for_student(db: Session, student_id: str) -> float:
    student = db.get(Student, student_id)
    if student is None:
        raise ResourceNotFoundError("Student", student_id)
    if not student.class_level_id or not student.subclass_letter:
        return 0.0
    statement = _statuses_for_class(db, student.class_level_id, student.subclass_letter).where(
        AttendanceRecord.student_id == student.id
    )
    return attendance_percentage(db.execute(statement).scalars())


def rate_for_class(
    db: Session,
    class_level_id: str,
    subclass_letter: str,
    academic_year_id: str | None = None,
) -> float:
    statement = _statuses_for_class(db, class_level_id, subclass_letter)
    if academic_year_id is not None:
        statement = statement.where(TimetableEntry.academic_year_id == academic_year_id)
    return attendance_percentage(db.execute(statement).scalars())


def refresh_student_rates(db: Session, student_ids: Iterable[str]) -> int:
    """Write the recomputed rate back onto each student.

    Best effort: each student is written under its own savepoint, so a student
    that cannot be refreshed is logged and skipped without touching the rest of
    the caller's transaction. The caller owns the commit.
    """
    refreshed = 0
    for student_id in dict.fromkeys(student_ids):
        try:
            with db.begin_nested():
                student = db.get(Student, student_id)
                if student is None:
                    logger.warning("Skipping attendance refresh for unknown student %s", student_id)
                    continue
                student.attendance_rate = rate_for_student(db, student_id)
                db.flush()
            refreshed += 1
        except Exception:
            logger.exception("Failed to refresh attendance rate for student %s", student_id)
    return refreshed

from datetime import datetime, timezone

import pytest
from sqlalchemy import select, text

from timetabler.core.exceptions import AccessDeniedError, ScheduleValidationError
from timetabler.core.security import Caller, UserRole
from timetabler.models.student import Student
from timetabler.models.timetable import AttendanceRecord, AttendanceStatus, DayOfWeek, TimetableEntry
from timetabler.schemas.timetable import AttendanceRecordIn, TimetableEntryCreate
from timetabler.services import attendance, timetable_store


def _math_entry(db, school, policy, **overrides):
    values = {
        "class_level_id": school.class_level_id,
        "subclass_letter": "A",
        "subject_id": school.math_id,
        "teacher_id": school.math_teacher_id,
        "day_of_week": DayOfWeek.monday,
        "start_time": "08:00",
        "number_of_periods": 2,
        "location": "Room 6A",
    }
    values.update(overrides)
    return timetable_store.create_entry(db, TimetableEntryCreate(**values), policy=policy)


def _roll(*pairs):
    return [AttendanceRecordIn(student_id=student_id, status=status) for student_id, status in pairs]


def test_attendance_percentage_counts_present_and_late():
    statuses = [AttendanceStatus.present, AttendanceStatus.late, AttendanceStatus.absent, AttendanceStatus.excused]
    assert attendance.attendance_percentage(statuses) == 50.0
    assert attendance.attendance_percentage([AttendanceStatus.present] * 2 + [AttendanceStatus.absent]) == 66.67


def test_rate_with_no_records_is_zero(db_session, school):
    assert attendance.rate_for_student(db_session, school.student_a1_id) == 0.0
    assert attendance.rate_for_student(db_session, school.unassigned_student_id) == 0.0
    assert attendance.rate_for_class(db_session, school.class_level_id, "A") == 0.0


def test_mark_attendance_stamps_period_and_refreshes_rates(db_session, school, policy):
    entry = _math_entry(db_session, school, policy)
    marked_at = datetime(2026, 10, 19, 8, 5, tzinfo=timezone.utc)

    period = timetable_store.mark_attendance(
        db_session,
        entry.id,
        0,
        _roll((school.student_a1_id, AttendanceStatus.present), (school.student_a2_id, AttendanceStatus.absent)),
        now=marked_at,
    )

    assert period.date.replace(tzinfo=None) == marked_at.replace(tzinfo=None)
    assert [record.student_id for record in period.attendance] == [school.student_a1_id, school.student_a2_id]
    assert db_session.get(Student, school.student_a1_id).attendance_rate == 100.0
    assert db_session.get(Student, school.student_a2_id).attendance_rate == 0.0
    assert attendance.rate_for_class(db_session, school.class_level_id, "A") == 50.0


def test_mark_attendance_replaces_roll_wholesale(db_session, school, policy):
    entry = _math_entry(db_session, school, policy)
    timetable_store.mark_attendance(
        db_session,
        entry.id,
        1,
        _roll((school.student_a1_id, AttendanceStatus.absent), (school.student_a2_id, AttendanceStatus.present)),
    )

    period = timetable_store.mark_attendance(
        db_session,
        entry.id,
        1,
        _roll((school.student_a1_id, AttendanceStatus.late)),
    )

    assert [(record.student_id, record.status) for record in period.attendance] == [
        (school.student_a1_id, AttendanceStatus.late)
    ]
    assert len(db_session.execute(select(AttendanceRecord)).scalars().all()) == 1
    # Dropped from the roll, so the cached rate is recomputed over no records.
    assert db_session.get(Student, school.student_a2_id).attendance_rate == 0.0
    assert db_session.get(Student, school.student_a1_id).attendance_rate == 100.0


def test_out_of_range_period_index_changes_nothing(db_session, school, policy):
    entry = _math_entry(db_session, school, policy)

    with pytest.raises(ScheduleValidationError, match="Invalid period index"):
        timetable_store.mark_attendance(
            db_session,
            entry.id,
            entry.number_of_periods,
            _roll((school.student_a1_id, AttendanceStatus.present)),
        )

    db_session.expire_all()
    assert db_session.execute(select(AttendanceRecord)).scalars().all() == []
    assert all(period.date is None for period in entry.periods)
    assert db_session.get(Student, school.student_a1_id).attendance_rate == 0.0


def test_students_outside_the_subclass_are_rejected(db_session, school, policy):
    entry = _math_entry(db_session, school, policy)

    with pytest.raises(ScheduleValidationError, match="not in subclass A"):
        timetable_store.mark_attendance(
            db_session,
            entry.id,
            0,
            _roll((school.student_a1_id, AttendanceStatus.present), (school.student_b1_id, AttendanceStatus.present)),
        )
    with pytest.raises(ScheduleValidationError, match="Duplicate"):
        timetable_store.mark_attendance(
            db_session,
            entry.id,
            0,
            _roll((school.student_a1_id, AttendanceStatus.present), (school.student_a1_id, AttendanceStatus.late)),
        )

    assert db_session.execute(select(AttendanceRecord)).scalars().all() == []


def test_only_assigned_teachers_take_the_register(db_session, school, policy):
    entry = _math_entry(db_session, school, policy)
    roll = _roll((school.student_a1_id, AttendanceStatus.present))

    with pytest.raises(AccessDeniedError):
        timetable_store.mark_attendance(
            db_session, entry.id, 0, roll, caller=Caller(id=school.english_teacher_id, role=UserRole.teacher)
        )

    period = timetable_store.mark_attendance(
        db_session, entry.id, 0, roll, caller=Caller(id=school.math_teacher_id, role=UserRole.teacher)
    )
    assert len(period.attendance) == 1


def test_get_period_attendance_returns_roll(db_session, school, policy):
    entry = _math_entry(db_session, school, policy)
    timetable_store.mark_attendance(db_session, entry.id, 0, _roll((school.student_a1_id, AttendanceStatus.late)))

    period = timetable_store.get_period_attendance(db_session, entry.id, 0)

    assert period.period_index == 0
    assert period.attendance[0].status == AttendanceStatus.late
    with pytest.raises(ScheduleValidationError):
        timetable_store.get_period_attendance(db_session, entry.id, -1)


def test_rate_spans_every_subject_of_the_class(db_session, school, policy):
    math = _math_entry(db_session, school, policy)
    english = _math_entry(
        db_session,
        school,
        policy,
        subject_id=school.english_id,
        teacher_id=school.english_teacher_id,
        start_time="11:00",
        number_of_periods=1,
    )
    timetable_store.mark_attendance(db_session, math.id, 0, _roll((school.student_a1_id, AttendanceStatus.present)))
    timetable_store.mark_attendance(db_session, english.id, 0, _roll((school.student_a1_id, AttendanceStatus.absent)))
    timetable_store.mark_attendance(db_session, math.id, 1, _roll((school.student_a1_id, AttendanceStatus.late)))

    assert attendance.rate_for_student(db_session, school.student_a1_id) == 66.67
    assert db_session.get(Student, school.student_a1_id).attendance_rate == 66.67


def test_delete_entry_recomputes_rates_for_students_on_its_rolls(db_session, school, policy):
    kept = _math_entry(db_session, school, policy)
    dropped = _math_entry(
        db_session,
        school,
        policy,
        subject_id=school.english_id,
        teacher_id=school.english_teacher_id,
        start_time="11:00",
        number_of_periods=1,
    )
    timetable_store.mark_attendance(db_session, kept.id, 0, _roll((school.student_a1_id, AttendanceStatus.present)))
    timetable_store.mark_attendance(
        db_session,
        dropped.id,
        0,
        _roll((school.student_a1_id, AttendanceStatus.absent), (school.student_a2_id, AttendanceStatus.present)),
    )
    assert db_session.get(Student, school.student_a1_id).attendance_rate == 50.0

    refreshed = timetable_store.delete_entry(db_session, dropped.id)

    assert refreshed == 2
    assert db_session.get(Student, school.student_a1_id).attendance_rate == 100.0
    assert db_session.get(Student, school.student_a2_id).attendance_rate == 0.0


def test_refresh_is_best_effort(db_session, school, monkeypatch):
    original = attendance.rate_for_student

    def flaky(db, student_id):
        if student_id == school.student_a1_id:
            raise RuntimeError("store unavailable")
        return original(db, student_id)

    monkeypatch.setattr(attendance, "rate_for_student", flaky)

    refreshed = attendance.refresh_student_rates(
        db_session,
        [school.student_a1_id, school.student_a2_id, "missing-student"],
    )

    assert refreshed == 1


def test_failed_rate_write_does_not_abort_delete(db_session, school, policy, monkeypatch):
    kept = _math_entry(db_session, school, policy)
    dropped = _math_entry(
        db_session,
        school,
        policy,
        subject_id=school.english_id,
        teacher_id=school.english_teacher_id,
        start_time="11:00",
        number_of_periods=1,
    )
    timetable_store.mark_attendance(db_session, kept.id, 0, _roll((school.student_a1_id, AttendanceStatus.present)))
    timetable_store.mark_attendance(
        db_session,
        dropped.id,
        0,
        _roll((school.student_a1_id, AttendanceStatus.absent), (school.student_a2_id, AttendanceStatus.present)),
    )
    original = attendance.rate_for_student

    def removed_mid_batch(db, student_id):
        rate = original(db, student_id)
        if student_id == school.student_a1_id:
            # The row disappears underneath the session, so the UPDATE matches nothing.
            db.execute(text("DELETE FROM students WHERE id = :id"), {"id": student_id})
        return rate

    monkeypatch.setattr(attendance, "rate_for_student", removed_mid_batch)

    refreshed = timetable_store.delete_entry(db_session, dropped.id)

    assert refreshed == 1
    db_session.expire_all()
    assert db_session.get(TimetableEntry, dropped.id) is None
    assert db_session.get(Student, school.student_a2_id).attendance_rate == 0.0
    assert db_session.get(Student, school.student_a1_id).attendance_rate == 50.0

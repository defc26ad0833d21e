import pytest
from sqlalchemy import select

from timetabler.core.exceptions import (
    AcademicScopeError,
    NoCurrentAcademicYearError,
    NotAssignedError,
    ResourceNotFoundError,
    ScheduleConflictError,
    ScheduleValidationError,
)
from timetabler.models.academic_year import AcademicYear
from timetabler.models.activity_log import ActivityLog
from timetabler.models.teacher import Teacher
from timetabler.models.timetable import AttendanceStatus, DayOfWeek, TimetableEntry, TimetablePeriod
from timetabler.schemas.timetable import AttendanceRecordIn, TimetableEntryCreate, TimetableEntryUpdate
from timetabler.services import timetable_store


def _create(db, school, policy, **overrides):
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


def test_create_entry_derives_end_time_and_period_placeholders(db_session, school, policy):
    entry = _create(db_session, school, policy)

    assert entry.end_time == "09:30"
    assert entry.academic_year_id == school.year_id
    assert [period.period_index for period in entry.periods] == [0, 1]
    assert all(period.date is None and period.attendance == [] for period in entry.periods)

    log = db_session.execute(select(ActivityLog).where(ActivityLog.action == "timetable.create")).scalar_one()
    assert log.entity_id == entry.id


def test_overlapping_subject_in_same_subclass_is_rejected(db_session, school, policy):
    _create(db_session, school, policy)

    with pytest.raises(ScheduleConflictError) as exc_info:
        _create(
            db_session,
            school,
            policy,
            subject_id=school.english_id,
            teacher_id=school.english_teacher_id,
            start_time="08:30",
            number_of_periods=1,
        )

    conflicts = exc_info.value.details["conflicts"]
    assert [item["conflict_type"] for item in conflicts] == ["class_conflict"]
    assert conflicts[0]["subject_id"] == school.math_id
    assert len(db_session.execute(select(TimetableEntry)).scalars().all()) == 1


def test_teacher_is_rejected_for_back_to_back_slot_in_other_subclass(db_session, school, policy):
    _create(db_session, school, policy)

    with pytest.raises(ScheduleConflictError) as exc_info:
        _create(db_session, school, policy, subclass_letter="B", start_time="09:30", number_of_periods=1)

    conflicts = exc_info.value.details["conflicts"]
    assert [item["conflict_type"] for item in conflicts] == ["teacher_conflict"]
    assert conflicts[0]["teacher_id"] == school.math_teacher_id


def test_other_subclass_without_teacher_overlap_is_accepted(db_session, school, policy):
    _create(db_session, school, policy)

    entry = _create(db_session, school, policy, subclass_letter="B", teacher_id=None, start_time="08:00")

    assert entry.subclass_letter == "B"
    assert entry.teacher_id is None


def test_create_rejects_write_outside_current_year(db_session, school, policy):
    with pytest.raises(AcademicScopeError):
        _create(db_session, school, policy, academic_year_id=school.previous_year_id)


def test_create_without_current_year_is_retryable(db_session, school, policy):
    db_session.get(AcademicYear, school.year_id).is_current = False
    db_session.commit()

    with pytest.raises(NoCurrentAcademicYearError) as exc_info:
        _create(db_session, school, policy)

    assert exc_info.value.status_code == 503
    assert exc_info.value.details["retryable"] is True


def test_create_validates_registry_references(db_session, school, policy):
    with pytest.raises(ResourceNotFoundError):
        _create(db_session, school, policy, subclass_letter="C")
    with pytest.raises(ResourceNotFoundError):
        _create(db_session, school, policy, subject_id="missing-subject")
    with pytest.raises(ScheduleValidationError, match="not assigned"):
        _create(db_session, school, policy, subject_id=school.english_id, subclass_letter="B", teacher_id=None)
    with pytest.raises(ScheduleValidationError, match="Teacher is not assigned"):
        _create(db_session, school, policy, teacher_id=school.english_teacher_id)


def test_create_rejects_slot_outside_school_day(db_session, school, policy):
    with pytest.raises(ScheduleValidationError):
        _create(db_session, school, policy, start_time="17:00", number_of_periods=2)
    with pytest.raises(ScheduleValidationError):
        _create(db_session, school, policy, start_time="23:30", number_of_periods=2)


def test_update_merges_unspecified_fields_and_excludes_itself(db_session, school, policy):
    entry = _create(db_session, school, policy)

    updated = timetable_store.update_entry(
        db_session,
        entry.id,
        TimetableEntryUpdate(start_time="08:15"),
        policy=policy,
    )

    assert updated.start_time == "08:15"
    assert updated.end_time == "09:45"
    assert updated.subject_id == school.math_id
    assert updated.teacher_id == school.math_teacher_id
    assert updated.location == "Room 6A"


def test_update_rechecks_conflicts_against_other_entries(db_session, school, policy):
    _create(db_session, school, policy)
    english = _create(
        db_session,
        school,
        policy,
        subject_id=school.english_id,
        teacher_id=school.english_teacher_id,
        start_time="10:00",
        number_of_periods=1,
    )

    with pytest.raises(ScheduleConflictError):
        timetable_store.update_entry(
            db_session,
            english.id,
            TimetableEntryUpdate(start_time="09:00"),
            policy=policy,
        )

    db_session.expire_all()
    assert db_session.get(TimetableEntry, english.id).start_time == "10:00"


def test_update_revalidates_merged_teacher(db_session, school, policy):
    entry = _create(db_session, school, policy)

    with pytest.raises(ScheduleValidationError, match="Teacher is not assigned"):
        timetable_store.update_entry(
            db_session,
            entry.id,
            TimetableEntryUpdate(subject_id=school.english_id),
            policy=policy,
        )


def test_update_can_clear_teacher_but_not_required_fields(db_session, school, policy):
    entry = _create(db_session, school, policy)

    updated = timetable_store.update_entry(db_session, entry.id, TimetableEntryUpdate(teacher_id=None), policy=policy)
    assert updated.teacher_id is None

    with pytest.raises(ScheduleValidationError, match="cannot be cleared"):
        timetable_store.update_entry(db_session, entry.id, TimetableEntryUpdate(start_time=None), policy=policy)


def test_update_resize_keeps_existing_periods(db_session, school, policy):
    entry = _create(db_session, school, policy, number_of_periods=3)
    timetable_store.mark_attendance(
        db_session,
        entry.id,
        0,
        [AttendanceRecordIn(student_id=school.student_a1_id, status=AttendanceStatus.present)],
    )

    grown = timetable_store.update_entry(db_session, entry.id, TimetableEntryUpdate(number_of_periods=4), policy=policy)
    assert [period.period_index for period in grown.periods] == [0, 1, 2, 3]
    assert grown.periods[0].date is not None
    assert len(grown.periods[0].attendance) == 1
    assert grown.end_time == "11:00"

    shrunk = timetable_store.update_entry(db_session, entry.id, TimetableEntryUpdate(number_of_periods=1), policy=policy)
    assert [period.period_index for period in shrunk.periods] == [0]
    assert len(shrunk.periods[0].attendance) == 1
    assert len(db_session.execute(select(TimetablePeriod)).scalars().all()) == 1


def test_update_refuses_entries_from_another_year(db_session, school, policy):
    entry = _create(db_session, school, policy)
    entry.academic_year_id = school.previous_year_id
    db_session.commit()

    with pytest.raises(AcademicScopeError):
        timetable_store.update_entry(db_session, entry.id, TimetableEntryUpdate(location="Hall"), policy=policy)


def test_delete_missing_entry_raises_not_found(db_session, school):
    with pytest.raises(ResourceNotFoundError):
        timetable_store.delete_entry(db_session, "missing")


def test_list_for_class_filters_by_subject_and_sorts_by_day_and_time(db_session, school, policy):
    _create(db_session, school, policy, day_of_week=DayOfWeek.wednesday, start_time="10:00", number_of_periods=1)
    _create(db_session, school, policy, day_of_week=DayOfWeek.monday, start_time="11:00", number_of_periods=1)
    _create(
        db_session,
        school,
        policy,
        subject_id=school.english_id,
        teacher_id=school.english_teacher_id,
        day_of_week=DayOfWeek.monday,
        start_time="08:00",
        number_of_periods=1,
    )

    everything = timetable_store.list_for_class(db_session, school.class_level_id, "A")
    assert [(DayOfWeek(item.day_of_week), item.start_time) for item in everything] == [
        (DayOfWeek.monday, "08:00"),
        (DayOfWeek.monday, "11:00"),
        (DayOfWeek.wednesday, "10:00"),
    ]

    math_only = timetable_store.list_for_class(db_session, school.class_level_id, "A", school.math_id)
    assert {item.subject_id for item in math_only} == {school.math_id}


def test_list_for_teacher_covers_assigned_classes(db_session, school, policy):
    _create(db_session, school, policy)
    _create(db_session, school, policy, subclass_letter="B", teacher_id=None, start_time="11:00", number_of_periods=1)

    entries = timetable_store.list_for_teacher(db_session, school.math_teacher_id)

    assert {item.subclass_letter for item in entries} == {"A", "B"}


def test_list_for_teacher_without_assignment_is_not_assigned(db_session, school):
    newcomer = Teacher(first_name="New", last_name="Teacher", email="new.teacher@example.com")
    db_session.add(newcomer)
    db_session.commit()

    with pytest.raises(NotAssignedError):
        timetable_store.list_for_teacher(db_session, newcomer.id)


def test_list_for_student_resolves_class_context(db_session, school, policy):
    _create(db_session, school, policy)

    entries = timetable_store.list_for_student(db_session, school.student_a1_id)
    assert len(entries) == 1
    assert timetable_store.list_for_student(db_session, school.student_b1_id) == []

    with pytest.raises(NotAssignedError):
        timetable_store.list_for_student(db_session, school.unassigned_student_id)

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from timetabler.api.deps import get_db, get_policy, require_roles
from timetabler.core.security import Caller, UserRole
from timetabler.schemas.timetable import (
    DeleteEntryOut,
    MarkAttendanceRequest,
    PeriodAttendanceOut,
    TimetableEntryCreate,
    TimetableEntryOut,
    TimetableEntryUpdate,
)
from timetabler.services import timetable_store
from timetabler.services.timetable_store import SchedulingPolicy

router = APIRouter()


@router.post("/", response_model=TimetableEntryOut, status_code=status.HTTP_201_CREATED)
def create_timetable_entry(
    payload: TimetableEntryCreate,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    policy: SchedulingPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
) -> TimetableEntryOut:
    return timetable_store.create_entry(db, payload, policy=policy, caller=caller)


@router.put("/{entry_id}", response_model=TimetableEntryOut)
def update_timetable_entry(
    entry_id: str,
    payload: TimetableEntryUpdate,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    policy: SchedulingPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
) -> TimetableEntryOut:
    return timetable_store.update_entry(db, entry_id, payload, policy=policy, caller=caller)


@router.delete("/{entry_id}", response_model=DeleteEntryOut)
def delete_timetable_entry(
    entry_id: str,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> DeleteEntryOut:
    refreshed = timetable_store.delete_entry(db, entry_id, caller=caller)
    return DeleteEntryOut(success=True, students_refreshed=refreshed)


@router.get("/class/{class_level_id}/{subclass_letter}", response_model=list[TimetableEntryOut])
def get_class_timetable(
    class_level_id: str,
    subclass_letter: str,
    subject_id: str | None = Query(default=None, max_length=36),
    caller: Caller = Depends(require_roles(UserRole.admin, UserRole.teacher, UserRole.student)),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    return timetable_store.list_for_class(db, class_level_id, subclass_letter.upper(), subject_id)


@router.get("/teacher/me", response_model=list[TimetableEntryOut])
def get_my_teacher_timetable(
    caller: Caller = Depends(require_roles(UserRole.teacher)),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    return timetable_store.list_for_teacher(db, caller.id)


@router.get("/teacher/{teacher_id}", response_model=list[TimetableEntryOut])
def get_teacher_timetable(
    teacher_id: str,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    return timetable_store.list_for_teacher(db, teacher_id)


@router.get("/student/me", response_model=list[TimetableEntryOut])
def get_my_student_timetable(
    caller: Caller = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    return timetable_store.list_for_student(db, caller.id)


@router.get("/student/{student_id}", response_model=list[TimetableEntryOut])
def get_student_timetable(
    student_id: str,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    return timetable_store.list_for_student(db, student_id)


@router.put("/{entry_id}/periods/{period_index}/attendance", response_model=PeriodAttendanceOut)
def mark_period_attendance(
    entry_id: str,
    period_index: int,
    payload: MarkAttendanceRequest,
    caller: Caller = Depends(require_roles(UserRole.admin, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> PeriodAttendanceOut:
    return timetable_store.mark_attendance(db, entry_id, period_index, payload.records, caller=caller)


@router.get("/{entry_id}/periods/{period_index}/attendance", response_model=PeriodAttendanceOut)
def get_period_attendance(
    entry_id: str,
    period_index: int,
    caller: Caller = Depends(require_roles(UserRole.admin, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> PeriodAttendanceOut:
    return timetable_store.get_period_attendance(db, entry_id, period_index, caller=caller)

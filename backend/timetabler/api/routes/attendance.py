from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from timetabler.api.deps import get_db, require_roles
from timetabler.core.exceptions import AccessDeniedError
from timetabler.core.security import Caller, UserRole
from timetabler.schemas.timetable import AttendanceRateOut
from timetabler.services.attendance import rate_for_class, rate_for_student

router = APIRouter()


@router.get("/attendance/students/{student_id}", response_model=AttendanceRateOut)
def get_student_attendance_rate(
    student_id: str,
    caller: Caller = Depends(require_roles(UserRole.admin, UserRole.teacher, UserRole.student)),
    db: Session = Depends(get_db),
) -> AttendanceRateOut:
    if caller.role == UserRole.student and caller.id != student_id:
        raise AccessDeniedError("Students can only view their own attendance")
    return AttendanceRateOut(scope="student", scope_id=student_id, attendance_rate=rate_for_student(db, student_id))


@router.get("/attendance/classes/{class_level_id}/{subclass_letter}", response_model=AttendanceRateOut)
def get_class_attendance_rate(
    class_level_id: str,
    subclass_letter: str,
    academic_year_id: str | None = Query(default=None, max_length=36),
    caller: Caller = Depends(require_roles(UserRole.admin, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> AttendanceRateOut:
    letter = subclass_letter.upper()
    rate = rate_for_class(db, class_level_id, letter, academic_year_id)
    return AttendanceRateOut(scope="class", scope_id=f"{class_level_id}/{letter}", attendance_rate=rate)

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from timetabler.api.deps import get_current_caller, get_db, require_roles
from timetabler.core.security import Caller, UserRole
from timetabler.schemas.calendar import AcademicYearCreate, AcademicYearOut, AcademicYearUpdate
from timetabler.services import calendar
from timetabler.services.audit import log_activity

router = APIRouter()


@router.get("/", response_model=list[AcademicYearOut])
def list_academic_years(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> list[AcademicYearOut]:
    return calendar.list_academic_years(db)


@router.post("/", response_model=AcademicYearOut, status_code=status.HTTP_201_CREATED)
def create_academic_year(
    payload: AcademicYearCreate,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> AcademicYearOut:
    year = calendar.create_academic_year(db, payload)
    log_activity(
        db,
        caller=caller,
        action="academic_year.create",
        entity_type="academic_year",
        entity_id=year.id,
        details={"name": year.name},
    )
    db.commit()
    db.refresh(year)
    return year


@router.get("/current", response_model=AcademicYearOut)
def get_current_academic_year(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> AcademicYearOut:
    return calendar.get_current_year(db)


@router.get("/{year_id}", response_model=AcademicYearOut)
def get_academic_year(
    year_id: str,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> AcademicYearOut:
    return calendar.get_academic_year(db, year_id)


@router.put("/{year_id}", response_model=AcademicYearOut)
def update_academic_year(
    year_id: str,
    payload: AcademicYearUpdate,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> AcademicYearOut:
    year = calendar.update_academic_year(db, year_id, payload)
    log_activity(
        db,
        caller=caller,
        action="academic_year.update",
        entity_type="academic_year",
        entity_id=year.id,
        details=payload.model_dump(mode="json"),
    )
    db.commit()
    db.refresh(year)
    return year


@router.delete("/{year_id}")
def delete_academic_year(
    year_id: str,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    calendar.delete_academic_year(db, year_id)
    log_activity(
        db,
        caller=caller,
        action="academic_year.delete",
        entity_type="academic_year",
        entity_id=year_id,
    )
    db.commit()
    return {"success": True}


@router.put("/{year_id}/current", response_model=AcademicYearOut)
def set_current_academic_year(
    year_id: str,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> AcademicYearOut:
    year = calendar.change_current_year(db, year_id)
    log_activity(
        db,
        caller=caller,
        action="academic_year.set_current",
        entity_type="academic_year",
        entity_id=year.id,
        details={"name": year.name},
    )
    db.commit()
    db.refresh(year)
    return year

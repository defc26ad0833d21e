from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from timetabler.api.deps import get_current_caller, get_db, require_roles
from timetabler.core.config import get_settings
from timetabler.core.security import Caller, UserRole
from timetabler.schemas.calendar import (
    AcademicTermCreate,
    AcademicTermOut,
    AcademicTermUpdate,
    ReconciliationOut,
    SubTermOut,
)
from timetabler.services import calendar
from timetabler.services.audit import log_activity
from timetabler.services.reconciliation import reconcile_all

router = APIRouter()


def _institution_today() -> date:
    return calendar.local_today(datetime.now(timezone.utc), get_settings().institution_timezone)


@router.post("/", response_model=AcademicTermOut, status_code=status.HTTP_201_CREATED)
def create_academic_term(
    payload: AcademicTermCreate,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> AcademicTermOut:
    academic_term = calendar.create_academic_term(db, payload, today=_institution_today())
    log_activity(
        db,
        caller=caller,
        action="academic_term.create",
        entity_type="academic_term",
        entity_id=academic_term.id,
        details={"academic_year_id": payload.academic_year_id},
    )
    db.commit()
    db.refresh(academic_term)
    return academic_term


@router.get("/", response_model=list[AcademicTermOut])
def list_academic_terms(
    academic_year_id: str = Query(min_length=1, max_length=36),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> list[AcademicTermOut]:
    return calendar.list_academic_terms(db, academic_year_id)


@router.get("/current", response_model=SubTermOut)
def get_current_term(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> SubTermOut:
    return calendar.get_current_sub_term(db)


@router.post("/reconcile", response_model=ReconciliationOut)
def reconcile_terms(
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ReconciliationOut:
    summary = reconcile_all(
        db,
        datetime.now(timezone.utc),
        timezone_name=get_settings().institution_timezone,
    )
    log_activity(
        db,
        caller=caller,
        action="academic_term.reconcile",
        entity_type="academic_term",
        details={"terms_updated": summary.terms_updated, "links_purged": summary.links_purged},
    )
    db.commit()
    return ReconciliationOut.model_validate(summary, from_attributes=True)


@router.get("/{term_id}", response_model=AcademicTermOut)
def get_academic_term(
    term_id: str,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> AcademicTermOut:
    return calendar.get_academic_term(db, term_id)


@router.put("/{term_id}", response_model=AcademicTermOut)
def update_academic_term(
    term_id: str,
    payload: AcademicTermUpdate,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> AcademicTermOut:
    academic_term = calendar.update_academic_term(db, term_id, payload, today=_institution_today())
    log_activity(
        db,
        caller=caller,
        action="academic_term.update",
        entity_type="academic_term",
        entity_id=academic_term.id,
        details=payload.model_dump(mode="json", exclude_none=True),
    )
    db.commit()
    db.refresh(academic_term)
    return academic_term


@router.delete("/{term_id}")
def delete_academic_term(
    term_id: str,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    calendar.delete_academic_term(db, term_id)
    log_activity(
        db,
        caller=caller,
        action="academic_term.delete",
        entity_type="academic_term",
        entity_id=term_id,
    )
    db.commit()
    return {"success": True}

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from timetabler.api.deps import get_db, require_roles
from timetabler.core.security import Caller, UserRole
from timetabler.models.submission_link import SubmissionLink
from timetabler.schemas.calendar import SubmissionLinkCreate, SubmissionLinkOut
from timetabler.services.audit import log_activity

router = APIRouter()


@router.get("/", response_model=list[SubmissionLinkOut])
def list_submission_links(
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[SubmissionLinkOut]:
    return list(db.execute(select(SubmissionLink).order_by(SubmissionLink.expires_at)).scalars())


@router.post("/", response_model=SubmissionLinkOut, status_code=status.HTTP_201_CREATED)
def create_submission_link(
    payload: SubmissionLinkCreate,
    caller: Caller = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SubmissionLinkOut:
    link = SubmissionLink(**payload.model_dump(), created_by_id=caller.id)
    db.add(link)
    db.flush()
    log_activity(
        db,
        caller=caller,
        action="submission_link.create",
        entity_type="submission_link",
        entity_id=link.id,
        details={"title": link.title},
    )
    db.commit()
    db.refresh(link)
    return link

from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, timezone
from enum import Enum
import logging
from zoneinfo import ZoneInfo

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from timetabler.core.exceptions import (
    AcademicScopeError,
    CalendarStateError,
    NoCurrentAcademicYearError,
    ResourceNotFoundError,
    ScheduleValidationError,
)
from timetabler.models.academic_term import AcademicSubTerm, AcademicTerm
from timetabler.models.academic_year import AcademicYear
from timetabler.models.timetable import TimetableEntry
from timetabler.schemas.calendar import (
    AcademicTermCreate,
    AcademicTermUpdate,
    AcademicYearCreate,
    AcademicYearUpdate,
    SubTermIn,
)

logger = logging.getLogger(__name__)


class SubTermState(str, Enum):
    future = "future"
    current = "current"
    past = "past"


def sub_term_state(today: date, start_date: date, end_date: date) -> SubTermState:
    """Derive a sub-term's position relative to ``today``.

    Both bounds are inclusive: the last day of a term is still current.
    """
    if today < start_date:
        return SubTermState.future
    if today > end_date:
        return SubTermState.past
    return SubTermState.current


def local_today(now: datetime, timezone_name: str) -> date:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(timezone_name)).date()


def date_ranges_intersect(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    return start_a <= end_b and start_b <= end_a


def get_current_year(db: Session) -> AcademicYear:
    years = list(db.execute(select(AcademicYear).where(AcademicYear.is_current.is_(True))).scalars())
    if not years:
        raise NoCurrentAcademicYearError()
    if len(years) > 1:
        year_ids = sorted(year.id for year in years)
        logger.critical("Calendar inconsistency: %d academic years flagged current (%s)", len(years), year_ids)
        raise CalendarStateError(
            "Multiple academic years are flagged current",
            details={"academic_year_ids": year_ids},
        )
    return years[0]


def ensure_current_year_scope(current_year: AcademicYear, academic_year_id: str | None) -> None:
    if academic_year_id is not None and academic_year_id != current_year.id:
        raise AcademicScopeError(
            "Timetables can only be changed for the current academic year",
            details={"current_academic_year_id": current_year.id, "academic_year_id": academic_year_id},
        )


def change_current_year(db: Session, year_id: str) -> AcademicYear:
    year = db.get(AcademicYear, year_id)
    if year is None:
        raise ResourceNotFoundError("AcademicYear", year_id)
    # One statement flips every row.
    db.execute(
        update(AcademicYear)
        .values(is_current=case((AcademicYear.id == year_id, True), else_=False))
        .execution_options(synchronize_session=False)
    )
    db.flush()
    db.expire_all()
    return db.get(AcademicYear, year_id)


def list_academic_years(db: Session) -> list[AcademicYear]:
    return list(db.execute(select(AcademicYear).order_by(AcademicYear.from_date)).scalars())


def get_academic_year(db: Session, year_id: str) -> AcademicYear:
    year = db.get(AcademicYear, year_id)
    if year is None:
        raise ResourceNotFoundError("AcademicYear", year_id)
    return year


def _ensure_unique_year_name(db: Session, name: str, exclude_id: str | None = None) -> None:
    statement = select(AcademicYear).where(AcademicYear.name == name)
    if exclude_id is not None:
        statement = statement.where(AcademicYear.id != exclude_id)
    if db.execute(statement).scalar_one_or_none() is not None:
        raise ScheduleValidationError(f"Academic year {name} already exists", details={"name": name})


def create_academic_year(db: Session, payload: AcademicYearCreate) -> AcademicYear:
    _ensure_unique_year_name(db, payload.name)
    year = AcademicYear(
        name=payload.name,
        from_date=payload.from_date,
        to_date=payload.to_date,
        is_current=False,
    )
    db.add(year)
    db.flush()
    return year


def update_academic_year(db: Session, year_id: str, payload: AcademicYearUpdate) -> AcademicYear:
    year = get_academic_year(db, year_id)
    _ensure_unique_year_name(db, payload.name, exclude_id=year_id)
    year.name = payload.name
    year.from_date = payload.from_date
    year.to_date = payload.to_date
    db.flush()
    return year


def delete_academic_year(db: Session, year_id: str) -> None:
    year = get_academic_year(db, year_id)
    if year.is_current:
        raise ScheduleValidationError("The current academic year cannot be deleted", details={"id": year_id})
    scheduled = db.execute(
        select(func.count()).select_from(TimetableEntry).where(TimetableEntry.academic_year_id == year_id)
    ).scalar_one()
    if scheduled:
        raise ScheduleValidationError(
            "Academic year still has timetable entries",
            details={"id": year_id, "timetable_entries": scheduled},
        )
    db.delete(year)
    db.flush()


def _one_month_after(today: date) -> date:
    year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
    return date(year, month, min(today.day, monthrange(year, month)[1]))


def validate_current_term_dates(term: SubTermIn, today: date) -> None:
    """A term may only be flagged current if it starts within a month and has not ended."""
    if term.start_date > _one_month_after(today):
        raise ScheduleValidationError(
            f"Term {term.name.value} cannot be current: start date is more than one month in the future"
        )
    if term.end_date < today:
        raise ScheduleValidationError(f"Term {term.name.value} cannot be current: end date is in the past")


def _validate_sub_terms(
    db: Session,
    year_id: str,
    terms: list[SubTermIn],
    today: date,
    exclude_term_id: str | None = None,
) -> list[AcademicSubTerm]:
    """Check a three-term set against itself and the year's other terms.

    Returns the sub-terms already recorded for the year, excluding ``exclude_term_id``.
    """
    for index, term in enumerate(terms):
        for other in terms[index + 1 :]:
            if date_ranges_intersect(term.start_date, term.end_date, other.start_date, other.end_date):
                raise ScheduleValidationError(
                    f"Terms {term.name.value} and {other.name.value} have overlapping dates"
                )

    current_terms = [term for term in terms if term.is_current]
    if len(current_terms) > 1:
        raise ScheduleValidationError("Only one term can be marked as current")
    for term in current_terms:
        validate_current_term_dates(term, today)

    statement = (
        select(AcademicSubTerm)
        .join(AcademicTerm, AcademicSubTerm.academic_term_id == AcademicTerm.id)
        .where(AcademicTerm.academic_year_id == year_id)
    )
    if exclude_term_id is not None:
        statement = statement.where(AcademicTerm.id != exclude_term_id)
    existing_sub_terms = list(db.execute(statement).scalars())
    for recorded in existing_sub_terms:
        for term in terms:
            if recorded.name == term.name:
                raise ScheduleValidationError(f"Term name {term.name.value} already exists in this academic year")
            if date_ranges_intersect(recorded.start_date, recorded.end_date, term.start_date, term.end_date):
                raise ScheduleValidationError(
                    f"New term {term.name.value} overlaps with existing term {recorded.name.value}"
                )
    return existing_sub_terms


def create_academic_term(db: Session, payload: AcademicTermCreate, *, today: date | None = None) -> AcademicTerm:
    year = get_academic_year(db, payload.academic_year_id)
    today = today or datetime.now(timezone.utc).date()

    terms = sorted(payload.terms, key=lambda item: item.start_date)
    existing_sub_terms = _validate_sub_terms(db, year.id, terms, today)

    if any(term.is_current for term in terms):
        for recorded in existing_sub_terms:
            recorded.is_current = False

    academic_term = AcademicTerm(
        academic_year_id=year.id,
        terms=[
            AcademicSubTerm(
                name=term.name,
                description=term.description,
                start_date=term.start_date,
                end_date=term.end_date,
                is_current=term.is_current,
            )
            for term in terms
        ],
    )
    db.add(academic_term)
    db.flush()
    return academic_term


def get_academic_term(db: Session, term_id: str) -> AcademicTerm:
    academic_term = db.get(AcademicTerm, term_id)
    if academic_term is None:
        raise ResourceNotFoundError("AcademicTerm", term_id)
    return academic_term


def update_academic_term(
    db: Session,
    term_id: str,
    payload: AcademicTermUpdate,
    *,
    today: date | None = None,
) -> AcademicTerm:
    """Replace the sub-term dates of an academic term and/or move it to another year.

    The sub-term set is re-validated as on creation, against the target
    year's other terms.
    """
    academic_term = get_academic_term(db, term_id)
    year_id = academic_term.academic_year_id
    if payload.academic_year_id is not None:
        year_id = get_academic_year(db, payload.academic_year_id).id
    today = today or datetime.now(timezone.utc).date()

    if payload.terms is not None:
        terms = sorted(payload.terms, key=lambda item: item.start_date)
    else:
        terms = [SubTermIn.model_validate(sub_term, from_attributes=True) for sub_term in academic_term.terms]
    existing_sub_terms = _validate_sub_terms(db, year_id, terms, today, exclude_term_id=academic_term.id)

    if payload.terms is not None:
        if any(term.is_current for term in terms):
            for recorded in existing_sub_terms:
                recorded.is_current = False
        by_name = {sub_term.name: sub_term for sub_term in academic_term.terms}
        for term in terms:
            sub_term = by_name[term.name]
            sub_term.description = term.description
            sub_term.start_date = term.start_date
            sub_term.end_date = term.end_date
            sub_term.is_current = term.is_current
    elif year_id != academic_term.academic_year_id and any(sub_term.is_current for sub_term in academic_term.terms):
        for recorded in existing_sub_terms:
            recorded.is_current = False

    academic_term.academic_year_id = year_id
    db.flush()
    db.refresh(academic_term)
    return academic_term


def delete_academic_term(db: Session, term_id: str) -> None:
    academic_term = get_academic_term(db, term_id)
    db.delete(academic_term)
    db.flush()


def list_academic_terms(db: Session, year_id: str) -> list[AcademicTerm]:
    get_academic_year(db, year_id)
    statement = (
        select(AcademicTerm)
        .where(AcademicTerm.academic_year_id == year_id)
        .order_by(AcademicTerm.created_at)
    )
    return list(db.execute(statement).scalars())


def get_current_sub_term(db: Session) -> AcademicSubTerm:
    year = get_current_year(db)
    statement = (
        select(AcademicSubTerm)
        .join(AcademicTerm, AcademicSubTerm.academic_term_id == AcademicTerm.id)
        .where(AcademicTerm.academic_year_id == year.id, AcademicSubTerm.is_current.is_(True))
        .order_by(AcademicSubTerm.start_date)
    )
    sub_term = db.execute(statement).scalars().first()
    if sub_term is None:
        raise ResourceNotFoundError("AcademicSubTerm", "current", message="No current academic term found")
    return sub_term


def reconcile_current_term(db: Session, now: datetime, *, timezone_name: str) -> int:
    """Recompute the ``is_current`` flag of every sub-term in the current year.

    Each AcademicTerm is committed on its own; a failure is logged and the
    remaining terms are still reconciled. Only sub-term flags are touched.
    Returns the number of sub-terms whose flag changed.
    """
    try:
        year = get_current_year(db)
    except NoCurrentAcademicYearError:
        logger.info("No current academic year found; skipping term reconciliation")
        return 0

    today = local_today(now, timezone_name)
    term_ids = list(
        db.execute(select(AcademicTerm.id).where(AcademicTerm.academic_year_id == year.id)).scalars()
    )
    if not term_ids:
        logger.info("No academic terms recorded for current academic year %s", year.name)
        return 0

    mutated = 0
    for term_id in term_ids:
        try:
            academic_term = db.get(AcademicTerm, term_id)
            if academic_term is None:
                continue
            changed = 0
            for sub_term in academic_term.terms:
                is_current = sub_term_state(today, sub_term.start_date, sub_term.end_date) is SubTermState.current
                if sub_term.is_current != is_current:
                    sub_term.is_current = is_current
                    changed += 1
                    logger.info(
                        "%s %s as current term for academic term %s",
                        "Set" if is_current else "Unset",
                        sub_term.name.value,
                        term_id,
                    )
            if changed:
                db.commit()
                mutated += changed
        except Exception:
            db.rollback()
            logger.exception("Failed to reconcile academic term %s", term_id)
    return mutated

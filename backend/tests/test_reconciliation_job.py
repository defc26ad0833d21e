import asyncio
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from timetabler.core.config import Settings
from timetabler.models.academic_term import AcademicSubTerm, SubTermName
from timetabler.models.submission_link import SubmissionLink
from timetabler.schemas.calendar import AcademicTermCreate, SubTermIn
from timetabler.services import calendar, reconciliation
from timetabler.services.reconciliation import (
    ReconciliationScheduler,
    purge_expired_submission_links,
    run_daily_reconciliation,
    seconds_until_next_run,
)


def _link(title, expires_at):
    return SubmissionLink(title=title, url=f"https://forms.example.com/{title}", expires_at=expires_at)


def _seed_terms(db, year_id):
    calendar.create_academic_term(
        db,
        AcademicTermCreate(
            academic_year_id=year_id,
            terms=[
                SubTermIn(name=SubTermName.first, start_date=date(2026, 9, 7), end_date=date(2026, 12, 18)),
                SubTermIn(name=SubTermName.second, start_date=date(2027, 1, 11), end_date=date(2027, 4, 9)),
                SubTermIn(name=SubTermName.third, start_date=date(2027, 4, 26), end_date=date(2027, 7, 23)),
            ],
        ),
    )
    db.commit()


def test_purge_deletes_only_expired_links(db_session):
    now = datetime(2026, 10, 19, tzinfo=timezone.utc)
    db_session.add_all(
        [
            _link("expired", datetime(2026, 10, 18, 23, 59, tzinfo=timezone.utc)),
            _link("upcoming", datetime(2026, 10, 20, tzinfo=timezone.utc)),
        ]
    )
    db_session.commit()

    assert purge_expired_submission_links(db_session, now) == 1
    assert purge_expired_submission_links(db_session, now) == 0
    assert [link.title for link in db_session.execute(select(SubmissionLink)).scalars()] == ["upcoming"]


def test_daily_run_reconciles_terms_and_purges_links(db_session, session_factory, school):
    _seed_terms(db_session, school.year_id)
    db_session.add(_link("expired", datetime(2026, 10, 1, tzinfo=timezone.utc)))
    db_session.commit()

    summary = run_daily_reconciliation(
        session_factory,
        datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc),
        timezone_name="Africa/Lagos",
    )

    assert summary.terms_updated == 1
    assert summary.links_purged == 1
    assert summary.errors == []
    db_session.expire_all()
    current = db_session.execute(select(AcademicSubTerm).where(AcademicSubTerm.is_current.is_(True))).scalar_one()
    assert current.name == SubTermName.first


def test_failing_step_does_not_skip_the_next(session_factory, db_session, monkeypatch):
    db_session.add(_link("expired", datetime(2026, 10, 1, tzinfo=timezone.utc)))
    db_session.commit()

    def broken(*args, **kwargs):
        raise RuntimeError("calendar unavailable")

    monkeypatch.setattr(reconciliation, "reconcile_current_term", broken)

    summary = run_daily_reconciliation(
        session_factory,
        datetime(2026, 10, 19, tzinfo=timezone.utc),
        timezone_name="UTC",
    )

    assert summary.terms_updated == 0
    assert summary.links_purged == 1
    assert summary.errors == ["terms: calendar unavailable"]


@pytest.mark.parametrize(
    ("now", "hour", "expected"),
    [
        # 22:00 UTC is 23:00 in Lagos, one hour before local midnight.
        (datetime(2026, 10, 19, 22, 0, tzinfo=timezone.utc), 0, 3600.0),
        (datetime(2026, 10, 19, 1, 30, tzinfo=timezone.utc), 3, 30 * 60.0),
        # Exactly on the hour waits for the next day.
        (datetime(2026, 10, 18, 23, 0, tzinfo=timezone.utc), 0, 24 * 3600.0),
    ],
)
def test_seconds_until_next_run(now, hour, expected):
    assert seconds_until_next_run(now, hour, "Africa/Lagos") == expected


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        # Clocks go forward at 01:00 UTC on 29 March 2026; 03:00 BST is 02:00 UTC.
        (datetime(2026, 3, 28, 23, 0, tzinfo=timezone.utc), 3 * 3600.0),
        # Clocks go back at 01:00 UTC on 25 October 2026; 03:00 GMT is 03:00 UTC.
        (datetime(2026, 10, 24, 23, 0, tzinfo=timezone.utc), 4 * 3600.0),
    ],
)
def test_seconds_until_next_run_across_daylight_saving_change(now, expected):
    assert seconds_until_next_run(now, 3, "Europe/London") == expected


def test_scheduler_starts_and_stops_cleanly(session_factory):
    settings = Settings(reconciliation_hour=0, institution_timezone="UTC")

    async def scenario():
        scheduler = ReconciliationScheduler(session_factory, settings)
        scheduler.start()
        assert scheduler.running
        await scheduler.stop()
        assert not scheduler.running

    asyncio.run(scenario())


def test_scheduler_runs_job_in_worker_thread(session_factory, db_session):
    db_session.add(_link("expired", datetime(2000, 1, 1, tzinfo=timezone.utc)))
    db_session.commit()
    settings = Settings(reconciliation_hour=0, institution_timezone="UTC")

    summary = asyncio.run(ReconciliationScheduler(session_factory, settings).run_once())

    assert summary.links_purged == 1
    assert summary.terms_updated == 0

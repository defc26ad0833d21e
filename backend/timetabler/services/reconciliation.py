from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from typing import Callable
from zoneinfo import ZoneInfo

from anyio import to_thread
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from timetabler.core.config import Settings
from timetabler.models.submission_link import SubmissionLink
from timetabler.services.calendar import reconcile_current_term

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationSummary:
    ran_at: datetime
    terms_updated: int = 0
    links_purged: int = 0
    errors: list[str] = field(default_factory=list)


def purge_expired_submission_links(db: Session, now: datetime) -> int:
    expired_ids = list(
        db.execute(select(SubmissionLink.id).where(SubmissionLink.expires_at < now)).scalars()
    )
    if not expired_ids:
        return 0
    db.execute(delete(SubmissionLink).where(SubmissionLink.id.in_(expired_ids)))
    db.commit()
    logger.info("Deleted %d expired submission link(s)", len(expired_ids))
    return len(expired_ids)


def reconcile_all(db: Session, now: datetime, *, timezone_name: str) -> ReconciliationSummary:
    """Run every time-driven maintenance step once on ``db``.

    Steps are independent: a failing step is logged and recorded in the
    summary, the next one still runs.
    """
    summary = ReconciliationSummary(ran_at=now)
    try:
        summary.terms_updated = reconcile_current_term(db, now, timezone_name=timezone_name)
    except Exception as exc:
        db.rollback()
        logger.exception("Academic term reconciliation failed")
        summary.errors.append(f"terms: {exc}")

    try:
        summary.links_purged = purge_expired_submission_links(db, now)
    except Exception as exc:
        db.rollback()
        logger.exception("Expired submission link cleanup failed")
        summary.errors.append(f"submission_links: {exc}")

    logger.info(
        "Reconciliation finished: %d term flag(s) updated, %d link(s) purged, %d error(s)",
        summary.terms_updated,
        summary.links_purged,
        len(summary.errors),
    )
    return summary


def run_daily_reconciliation(
    session_factory: Callable[[], Session],
    now: datetime | None = None,
    *,
    timezone_name: str,
) -> ReconciliationSummary:
    db = session_factory()
    try:
        return reconcile_all(db, now or datetime.now(timezone.utc), timezone_name=timezone_name)
    finally:
        db.close()


def seconds_until_next_run(now: datetime, hour: int, timezone_name: str) -> float:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_now = now.astimezone(ZoneInfo(timezone_name))
    next_run = local_now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= local_now:
        next_run = (next_run + timedelta(days=1)).replace(hour=hour)
    # Elapsed seconds, not the wall-clock difference.
    return (next_run.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()


class ReconciliationScheduler:
    """Daily tick that runs the reconciliation in a worker thread."""

    def __init__(self, session_factory: Callable[[], Session], settings: Settings) -> None:
        self._session_factory = session_factory
        self._hour = settings.reconciliation_hour
        self._timezone_name = settings.institution_timezone
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="daily-reconciliation")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> ReconciliationSummary:
        return await to_thread.run_sync(
            lambda: run_daily_reconciliation(self._session_factory, timezone_name=self._timezone_name)
        )

    async def _loop(self) -> None:
        while True:
            delay = seconds_until_next_run(datetime.now(timezone.utc), self._hour, self._timezone_name)
            logger.debug("Next daily reconciliation in %.0f seconds", delay)
            await asyncio.sleep(delay)
            try:
                await self.run_once()
            except Exception:  # pragma: no cover - worker thread failures are logged inside the job
                logger.exception("Daily reconciliation tick failed")

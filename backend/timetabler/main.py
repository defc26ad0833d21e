from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timetabler.api.routes import (
    academic_terms,
    academic_years,
    activity,
    attendance,
    health,
    submission_links,
    timetable,
)
from timetabler.core.config import get_settings
from timetabler.core.exceptions import AppError
from timetabler.core.middleware import RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from timetabler.db.bootstrap import ensure_runtime_schema_compatibility
from timetabler.db.session import SessionLocal
from timetabler.services.reconciliation import ReconciliationScheduler

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_runtime_schema_compatibility()
    scheduler = None
    if settings.reconciliation_enabled:
        scheduler = ReconciliationScheduler(SessionLocal, settings)
        scheduler.start()
        logger.info(
            "Daily reconciliation scheduled at %02d:00 %s",
            settings.reconciliation_hour,
            settings.institution_timezone,
        )
    app.state.reconciliation_scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(SecurityHeadersMiddleware, settings=settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(academic_years.router, prefix=f"{settings.api_prefix}/academic-years", tags=["academic-years"])
app.include_router(academic_terms.router, prefix=f"{settings.api_prefix}/academic-terms", tags=["academic-terms"])
app.include_router(timetable.router, prefix=f"{settings.api_prefix}/timetable", tags=["timetable"])
app.include_router(attendance.router, prefix=settings.api_prefix, tags=["attendance"])
app.include_router(
    submission_links.router,
    prefix=f"{settings.api_prefix}/submission-links",
    tags=["submission-links"],
)
app.include_router(activity.router, prefix=settings.api_prefix, tags=["activity"])

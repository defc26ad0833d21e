from __future__ import annotations

import logging

from sqlalchemy import inspect

from timetabler import models  # noqa: F401
from timetabler.db.base import Base
from timetabler.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "academic_years": {"id", "name", "from_date", "to_date", "is_current"},
    "academic_sub_terms": {"id", "academic_term_id", "name", "start_date", "end_date", "is_current"},
    "students": {"id", "class_level_id", "subclass_letter", "attendance_rate"},
    "subject_assignments": {"id", "subject_id", "class_level_id", "subclass_letter", "teacher_ids"},
    "timetable_entries": {
        "id",
        "class_level_id",
        "subclass_letter",
        "subject_id",
        "teacher_id",
        "day_of_week",
        "start_time",
        "end_time",
        "number_of_periods",
        "academic_year_id",
    },
    "timetable_periods": {"id", "entry_id", "period_index", "date"},
    "attendance_records": {"id", "period_id", "student_id", "status"},
    "submission_links": {"id", "expires_at"},
}


def _assert_required_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema_compatibility() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc

import os
import tempfile
from datetime import date
from pathlib import Path
from types import SimpleNamespace

# The app bootstraps its own engine on startup; point it at a throwaway file before settings load.
_BOOTSTRAP_DIR = Path(tempfile.mkdtemp(prefix="timetabler-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_BOOTSTRAP_DIR / 'bootstrap.db'}"
os.environ["RECONCILIATION_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from timetabler.api.deps import get_db  # noqa: E402
from timetabler.core.security import UserRole, create_access_token  # noqa: E402
from timetabler.db.base import Base  # noqa: E402
from timetabler.main import app  # noqa: E402
from timetabler.models.academic_year import AcademicYear  # noqa: E402
from timetabler.models.class_level import ClassLevel, ClassSection, Subclass  # noqa: E402
from timetabler.models.student import Student  # noqa: E402
from timetabler.models.subject import Subject, SubjectAssignment  # noqa: E402
from timetabler.models.teacher import Teacher  # noqa: E402
from timetabler.services.scope_locks import scope_locks  # noqa: E402
from timetabler.services.timetable_store import SchedulingPolicy  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def policy():
    return SchedulingPolicy(period_minutes=45, day_start="07:00", day_end="18:00")


@pytest.fixture()
def client(session_factory):
    scope_locks.clear()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    scope_locks.clear()


@pytest.fixture()
def auth_headers():
    def build(caller_id: str, role: UserRole) -> dict:
        token = create_access_token(caller_id, role)
        return {"Authorization": f"Bearer {token}"}

    return build


def seed_school(db_session):
    """A current year with Primary 6 A/B, Math and English, two teachers and four students."""
    current_year = AcademicYear(
        name="2026/2027",
        from_date=date(2026, 9, 1),
        to_date=date(2027, 7, 31),
        is_current=True,
    )
    previous_year = AcademicYear(
        name="2025/2026",
        from_date=date(2025, 9, 1),
        to_date=date(2026, 7, 31),
        is_current=False,
    )
    primary_six = ClassLevel(section=ClassSection.primary, name="Primary 6")
    primary_six.subclasses = [Subclass(letter="A"), Subclass(letter="B")]
    db_session.add_all([current_year, previous_year, primary_six])
    db_session.flush()

    math_teacher = Teacher(first_name="Ada", last_name="Obi", email="ada.obi@example.com")
    english_teacher = Teacher(first_name="Tunde", last_name="Bello", email="tunde.bello@example.com")
    db_session.add_all([math_teacher, english_teacher])
    db_session.flush()

    math = Subject(name="Math")
    math.assignments = [
        SubjectAssignment(class_level_id=primary_six.id, subclass_letter="A", teacher_ids=[math_teacher.id]),
        SubjectAssignment(class_level_id=primary_six.id, subclass_letter="B", teacher_ids=[math_teacher.id]),
    ]
    english = Subject(name="English")
    english.assignments = [
        SubjectAssignment(class_level_id=primary_six.id, subclass_letter="A", teacher_ids=[english_teacher.id]),
    ]
    db_session.add_all([math, english])

    amaka = Student(first_name="Amaka", last_name="Eze", class_level_id=primary_six.id, subclass_letter="A")
    bayo = Student(first_name="Bayo", last_name="Ade", class_level_id=primary_six.id, subclass_letter="A")
    chidi = Student(first_name="Chidi", last_name="Nwosu", class_level_id=primary_six.id, subclass_letter="B")
    dayo = Student(first_name="Dayo", last_name="Ojo")
    db_session.add_all([amaka, bayo, chidi, dayo])
    db_session.commit()

    return SimpleNamespace(
        year_id=current_year.id,
        previous_year_id=previous_year.id,
        class_level_id=primary_six.id,
        math_id=math.id,
        english_id=english.id,
        math_teacher_id=math_teacher.id,
        english_teacher_id=english_teacher.id,
        student_a1_id=amaka.id,
        student_a2_id=bayo.id,
        student_b1_id=chidi.id,
        unassigned_student_id=dayo.id,
    )


@pytest.fixture()
def school(db_session):
    return seed_school(db_session)


@pytest.fixture()
def file_session_factory(tmp_path):
    """Sessions on a file-backed database, one connection per thread."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'concurrent.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def file_school(file_session_factory):
    db = file_session_factory()
    try:
        return seed_school(db)
    finally:
        db.close()

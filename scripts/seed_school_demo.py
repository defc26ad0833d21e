"""Seed a demo school calendar, registry and bearer tokens for role checks.

Run:
  PYTHONPATH=backend python scripts/seed_school_demo.py
"""

from __future__ import annotations

import os
from datetime import date
from typing import Iterable

from sqlalchemy import select

from timetabler.core.security import UserRole, create_access_token
from timetabler.db.session import SessionLocal
from timetabler.models.academic_year import AcademicYear
from timetabler.models.class_level import ClassLevel, ClassSection, Subclass
from timetabler.models.student import Student
from timetabler.models.subject import Subject, SubjectAssignment
from timetabler.models.teacher import Teacher
from timetabler.services import calendar

DEMO_YEAR = os.getenv("DEMO_ACADEMIC_YEAR", "2026/2027")
DEMO_CLASS = "Primary 6"
SUBCLASS_LETTERS = ("A", "B")

DEMO_TEACHERS = {
    "teacher_math": {"first_name": "Ada", "last_name": "Okafor", "email": "math.demo@school.example"},
    "teacher_english": {"first_name": "Tunde", "last_name": "Bello", "email": "english.demo@school.example"},
}

DEMO_STUDENTS = {
    "student_a": {"first_name": "Demo", "last_name": "Student A", "subclass_letter": "A"},
    "student_b": {"first_name": "Demo", "last_name": "Student B", "subclass_letter": "B"},
}


def _upsert_year() -> AcademicYear:
    with SessionLocal() as session:
        year = session.execute(select(AcademicYear).where(AcademicYear.name == DEMO_YEAR)).scalar_one_or_none()
        if year is None:
            start_year = int(DEMO_YEAR.split("/")[0])
            year = AcademicYear(
                name=DEMO_YEAR,
                from_date=date(start_year, 9, 1),
                to_date=date(start_year + 1, 7, 31),
            )
            session.add(year)
            session.flush()
        calendar.change_current_year(session, year.id)
        session.commit()
        session.refresh(year)
        return year


def _upsert_class_level() -> ClassLevel:
    with SessionLocal() as session:
        class_level = session.execute(
            select(ClassLevel).where(ClassLevel.name == DEMO_CLASS)
        ).scalar_one_or_none()
        if class_level is None:
            class_level = ClassLevel(section=ClassSection.primary, name=DEMO_CLASS)
            session.add(class_level)
        for letter in SUBCLASS_LETTERS:
            if not class_level.has_subclass(letter):
                class_level.subclasses.append(Subclass(letter=letter))
        session.commit()
        session.refresh(class_level)
        return class_level


def _upsert_teacher(*, first_name: str, last_name: str, email: str) -> Teacher:
    with SessionLocal() as session:
        teacher = session.execute(select(Teacher).where(Teacher.email == email)).scalar_one_or_none()
        if teacher is None:
            teacher = Teacher(first_name=first_name, last_name=last_name, email=email)
            session.add(teacher)
        else:
            teacher.first_name = first_name
            teacher.last_name = last_name
        session.commit()
        session.refresh(teacher)
        return teacher


def _upsert_subject(name: str, class_level_id: str, teacher_ids_by_letter: dict[str, list[str]]) -> Subject:
    with SessionLocal() as session:
        subject = session.execute(select(Subject).where(Subject.name == name)).scalar_one_or_none()
        if subject is None:
            subject = Subject(name=name)
            session.add(subject)
        for letter, teacher_ids in teacher_ids_by_letter.items():
            assignment = subject.assignment_for(class_level_id, letter)
            if assignment is None:
                subject.assignments.append(
                    SubjectAssignment(class_level_id=class_level_id, subclass_letter=letter, teacher_ids=teacher_ids)
                )
            else:
                assignment.teacher_ids = teacher_ids
        session.commit()
        session.refresh(subject)
        return subject


def _upsert_student(*, first_name: str, last_name: str, class_level_id: str, subclass_letter: str) -> Student:
    with SessionLocal() as session:
        student = session.execute(
            select(Student).where(Student.first_name == first_name, Student.last_name == last_name)
        ).scalar_one_or_none()
        if student is None:
            student = Student(first_name=first_name, last_name=last_name)
            session.add(student)
        student.class_level_id = class_level_id
        student.subclass_letter = subclass_letter
        session.commit()
        session.refresh(student)
        return student


def _print_tokens(items: Iterable[tuple[str, str, UserRole]]) -> None:
    print("\nDemo bearer tokens:")
    for label, subject_id, role in items:
        print(f"  - {label} ({role.value}, id={subject_id}):")
        print(f"    {create_access_token(subject_id, role)}")
    print("\nExpected isolation:")
    print("  - teacher_math may mark attendance for Mathematics in A and B")
    print("  - teacher_english may mark attendance for English in A only")
    print("  - student_a and student_b each see only their own subclass timetable")


def main() -> None:
    year = _upsert_year()
    class_level = _upsert_class_level()
    teachers = {key: _upsert_teacher(**item) for key, item in DEMO_TEACHERS.items()}

    _upsert_subject(
        "Mathematics",
        class_level.id,
        {letter: [teachers["teacher_math"].id] for letter in SUBCLASS_LETTERS},
    )
    _upsert_subject("English", class_level.id, {"A": [teachers["teacher_english"].id]})

    students = {
        key: _upsert_student(
            first_name=item["first_name"],
            last_name=item["last_name"],
            class_level_id=class_level.id,
            subclass_letter=item["subclass_letter"],
        )
        for key, item in DEMO_STUDENTS.items()
    }

    print(f"Current academic year: {year.name} ({year.id})")
    print(f"Class level: {class_level.name} ({class_level.id})")
    _print_tokens(
        [("admin", "demo-admin", UserRole.admin)]
        + [(key, teacher.id, UserRole.teacher) for key, teacher in teachers.items()]
        + [(key, student.id, UserRole.student) for key, student in students.items()]
    )


if __name__ == "__main__":
    main()

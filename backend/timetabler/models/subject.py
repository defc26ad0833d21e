import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from timetabler.db.base import Base


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    assignments: Mapped[list["SubjectAssignment"]] = relationship(
        back_populates="subject",
        cascade="all, delete-orphan",
    )

    def assignment_for(self, class_level_id: str, subclass_letter: str) -> "SubjectAssignment | None":
        for assignment in self.assignments:
            if assignment.class_level_id == class_level_id and assignment.subclass_letter == subclass_letter:
                return assignment
        return None


class SubjectAssignment(Base):
    __tablename__ = "subject_assignments"
    __table_args__ = (
        UniqueConstraint("subject_id", "class_level_id", "subclass_letter", name="uq_subject_assignment"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    subject_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("subjects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    class_level_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("class_levels.id", ondelete="CASCADE"), index=True, nullable=False
    )
    subclass_letter: Mapped[str] = mapped_column(String(1), nullable=False)
    teacher_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    subject: Mapped[Subject] = relationship(back_populates="assignments")

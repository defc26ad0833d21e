import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from sqlalchemy.sql import func

from timetabler.db.base import Base
from timetabler.schemas.common import SUBCLASS_LETTER_PATTERN


class ClassSection(str, Enum):
    primary = "Primary"
    secondary = "Secondary"


CLASS_NAMES_BY_SECTION: dict[ClassSection, tuple[str, ...]] = {
    ClassSection.primary: (
        "Kindergarten",
        "Reception",
        "Nursery 1",
        "Nursery 2",
        "Primary 1",
        "Primary 2",
        "Primary 3",
        "Primary 4",
        "Primary 5",
        "Primary 6",
    ),
    ClassSection.secondary: ("JSS 1", "JSS 2", "JSS 3", "SS 1", "SS 2", "SS 3"),
}


class ClassLevel(Base):
    __tablename__ = "class_levels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    section: Mapped[ClassSection] = mapped_column(SAEnum(ClassSection, name="class_section"), nullable=False)
    name: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    subclasses: Mapped[list["Subclass"]] = relationship(
        back_populates="class_level",
        cascade="all, delete-orphan",
        order_by="Subclass.letter",
    )

    @validates("name")
    def validate_name(self, _key: str, value: str) -> str:
        allowed = CLASS_NAMES_BY_SECTION.get(ClassSection(self.section)) if self.section else None
        if allowed is not None and value not in allowed:
            raise ValueError(f"Invalid class name for {ClassSection(self.section).value}: {value}")
        return value

    def has_subclass(self, letter: str) -> bool:
        return any(subclass.letter == letter for subclass in self.subclasses)


class Subclass(Base):
    __tablename__ = "subclasses"
    __table_args__ = (UniqueConstraint("class_level_id", "letter", name="uq_subclass_letter"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    class_level_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("class_levels.id", ondelete="CASCADE"), index=True, nullable=False
    )
    letter: Mapped[str] = mapped_column(String(1), nullable=False)

    class_level: Mapped[ClassLevel] = relationship(back_populates="subclasses")

    @validates("letter")
    def validate_letter(self, _key: str, value: str) -> str:
        if not SUBCLASS_LETTER_PATTERN.match(value or ""):
            raise ValueError("Subclass letter must be a single uppercase letter")
        return value

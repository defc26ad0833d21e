import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from timetabler.db.base import Base


class SubTermName(str, Enum):
    first = "1st Term"
    second = "2nd Term"
    third = "3rd Term"


class AcademicTerm(Base):
    __tablename__ = "academic_terms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    academic_year_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("academic_years.id", ondelete="CASCADE"), index=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    academic_year: Mapped["AcademicYear"] = relationship(back_populates="terms")
    terms: Mapped[list["AcademicSubTerm"]] = relationship(
        back_populates="academic_term",
        cascade="all, delete-orphan",
        order_by="AcademicSubTerm.start_date",
    )


class AcademicSubTerm(Base):
    __tablename__ = "academic_sub_terms"
    __table_args__ = (UniqueConstraint("academic_term_id", "name", name="uq_sub_term_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    academic_term_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("academic_terms.id", ondelete="CASCADE"), index=True, nullable=False
    )
    name: Mapped[SubTermName] = mapped_column(SAEnum(SubTermName, name="sub_term_name"), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    academic_term: Mapped[AcademicTerm] = relationship(back_populates="terms")

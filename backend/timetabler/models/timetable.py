import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from timetabler.db.base import Base


class DayOfWeek(str, Enum):
    monday = "Monday"
    tuesday = "Tuesday"
    wednesday = "Wednesday"
    thursday = "Thursday"
    friday = "Friday"


class AttendanceStatus(str, Enum):
    present = "Present"
    absent = "Absent"
    late = "Late"
    excused = "Excused"


ATTENDED_STATUSES = frozenset({AttendanceStatus.present, AttendanceStatus.late})


class TimetableEntry(Base):
    __tablename__ = "timetable_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    class_level_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("class_levels.id"), index=True, nullable=False
    )
    subclass_letter: Mapped[str] = mapped_column(String(1), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(36), ForeignKey("subjects.id"), index=True, nullable=False)
    teacher_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("teachers.id"), index=True, nullable=True
    )
    day_of_week: Mapped[DayOfWeek] = mapped_column(SAEnum(DayOfWeek, name="day_of_week"), nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    # Always derived from start_time and number_of_periods.
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    number_of_periods: Mapped[int] = mapped_column(Integer, nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    academic_year_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("academic_years.id"), index=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    periods: Mapped[list["TimetablePeriod"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="TimetablePeriod.period_index",
    )

    def period_at(self, period_index: int) -> "TimetablePeriod | None":
        for period in self.periods:
            if period.period_index == period_index:
                return period
        return None


class TimetablePeriod(Base):
    __tablename__ = "timetable_periods"
    __table_args__ = (UniqueConstraint("entry_id", "period_index", name="uq_period_index"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entry_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("timetable_entries.id", ondelete="CASCADE"), index=True, nullable=False
    )
    period_index: Mapped[int] = mapped_column(Integer, nullable=False)
    # None until attendance is first marked for this period.
    date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    entry: Mapped[TimetableEntry] = relationship(back_populates="periods")
    attendance: Mapped[list["AttendanceRecord"]] = relationship(
        back_populates="period",
        cascade="all, delete-orphan",
        order_by="AttendanceRecord.position",
    )


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("period_id", "student_id", name="uq_attendance_student"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    period_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("timetable_periods.id", ondelete="CASCADE"), index=True, nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    student_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    status: Mapped[AttendanceStatus] = mapped_column(
        SAEnum(AttendanceStatus, name="attendance_status"), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(String(200), nullable=True)

    period: Mapped[TimetablePeriod] = relationship(back_populates="attendance")

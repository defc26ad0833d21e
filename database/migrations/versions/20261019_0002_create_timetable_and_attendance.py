"""create timetable and attendance tables

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


day_of_week_enum = sa.Enum("monday", "tuesday", "wednesday", "thursday", "friday", name="day_of_week")
attendance_status_enum = sa.Enum("present", "absent", "late", "excused", name="attendance_status")


def upgrade() -> None:
    op.create_table(
        "timetable_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_level_id", sa.String(length=36), sa.ForeignKey("class_levels.id"), nullable=False),
        sa.Column("subclass_letter", sa.String(length=1), nullable=False),
        sa.Column("subject_id", sa.String(length=36), sa.ForeignKey("subjects.id"), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), sa.ForeignKey("teachers.id"), nullable=True),
        sa.Column("day_of_week", day_of_week_enum, nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("number_of_periods", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=False),
        sa.Column("academic_year_id", sa.String(length=36), sa.ForeignKey("academic_years.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_timetable_entries_class_level_id", "timetable_entries", ["class_level_id"], unique=False)
    op.create_index("ix_timetable_entries_subject_id", "timetable_entries", ["subject_id"], unique=False)
    op.create_index("ix_timetable_entries_teacher_id", "timetable_entries", ["teacher_id"], unique=False)
    op.create_index(
        "ix_timetable_entries_academic_year_id", "timetable_entries", ["academic_year_id"], unique=False
    )

    op.create_table(
        "timetable_periods",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "entry_id",
            sa.String(length=36),
            sa.ForeignKey("timetable_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_index", sa.Integer(), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("entry_id", "period_index", name="uq_period_index"),
    )
    op.create_index("ix_timetable_periods_entry_id", "timetable_periods", ["entry_id"], unique=False)

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "period_id",
            sa.String(length=36),
            sa.ForeignKey("timetable_periods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("status", attendance_status_enum, nullable=False),
        sa.Column("notes", sa.String(length=200), nullable=True),
        sa.UniqueConstraint("period_id", "student_id", name="uq_attendance_student"),
    )
    op.create_index("ix_attendance_records_period_id", "attendance_records", ["period_id"], unique=False)
    op.create_index("ix_attendance_records_student_id", "attendance_records", ["student_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_attendance_records_student_id", table_name="attendance_records")
    op.drop_index("ix_attendance_records_period_id", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_index("ix_timetable_periods_entry_id", table_name="timetable_periods")
    op.drop_table("timetable_periods")
    op.drop_index("ix_timetable_entries_academic_year_id", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_teacher_id", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_subject_id", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_class_level_id", table_name="timetable_entries")
    op.drop_table("timetable_entries")
    attendance_status_enum.drop(op.get_bind(), checkfirst=True)
    day_of_week_enum.drop(op.get_bind(), checkfirst=True)

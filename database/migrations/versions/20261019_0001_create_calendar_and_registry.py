"""create calendar and registry tables

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


sub_term_name_enum = sa.Enum("first", "second", "third", name="sub_term_name")
class_section_enum = sa.Enum("primary", "secondary", name="class_section")


def upgrade() -> None:
    op.create_table(
        "academic_years",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("from_date", sa.Date(), nullable=False),
        sa.Column("to_date", sa.Date(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_academic_years_name", "academic_years", ["name"], unique=True)
    op.create_index("ix_academic_years_is_current", "academic_years", ["is_current"], unique=False)

    op.create_table(
        "academic_terms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "academic_year_id",
            sa.String(length=36),
            sa.ForeignKey("academic_years.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_academic_terms_academic_year_id", "academic_terms", ["academic_year_id"], unique=False)

    op.create_table(
        "academic_sub_terms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "academic_term_id",
            sa.String(length=36),
            sa.ForeignKey("academic_terms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sub_term_name_enum, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.UniqueConstraint("academic_term_id", "name", name="uq_sub_term_name"),
    )
    op.create_index(
        "ix_academic_sub_terms_academic_term_id", "academic_sub_terms", ["academic_term_id"], unique=False
    )

    op.create_table(
        "class_levels",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("section", class_section_enum, nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_class_levels_name", "class_levels", ["name"], unique=False)

    op.create_table(
        "subclasses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "class_level_id",
            sa.String(length=36),
            sa.ForeignKey("class_levels.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("letter", sa.String(length=1), nullable=False),
        sa.UniqueConstraint("class_level_id", "letter", name="uq_subclass_letter"),
    )
    op.create_index("ix_subclasses_class_level_id", "subclasses", ["class_level_id"], unique=False)

    op.create_table(
        "subjects",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_subjects_name", "subjects", ["name"], unique=False)

    op.create_table(
        "subject_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "subject_id",
            sa.String(length=36),
            sa.ForeignKey("subjects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "class_level_id",
            sa.String(length=36),
            sa.ForeignKey("class_levels.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("subclass_letter", sa.String(length=1), nullable=False),
        sa.Column("teacher_ids", sa.JSON(), nullable=False),
        sa.UniqueConstraint("subject_id", "class_level_id", "subclass_letter", name="uq_subject_assignment"),
    )
    op.create_index("ix_subject_assignments_subject_id", "subject_assignments", ["subject_id"], unique=False)
    op.create_index(
        "ix_subject_assignments_class_level_id", "subject_assignments", ["class_level_id"], unique=False
    )

    op.create_table(
        "teachers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_teachers_email", "teachers", ["email"], unique=True)

    op.create_table(
        "students",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column(
            "class_level_id",
            sa.String(length=36),
            sa.ForeignKey("class_levels.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("subclass_letter", sa.String(length=1), nullable=True),
        sa.Column("attendance_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_students_class_level_id", "students", ["class_level_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_students_class_level_id", table_name="students")
    op.drop_table("students")
    op.drop_index("ix_teachers_email", table_name="teachers")
    op.drop_table("teachers")
    op.drop_index("ix_subject_assignments_class_level_id", table_name="subject_assignments")
    op.drop_index("ix_subject_assignments_subject_id", table_name="subject_assignments")
    op.drop_table("subject_assignments")
    op.drop_index("ix_subjects_name", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_subclasses_class_level_id", table_name="subclasses")
    op.drop_table("subclasses")
    op.drop_index("ix_class_levels_name", table_name="class_levels")
    op.drop_table("class_levels")
    op.drop_index("ix_academic_sub_terms_academic_term_id", table_name="academic_sub_terms")
    op.drop_table("academic_sub_terms")
    op.drop_index("ix_academic_terms_academic_year_id", table_name="academic_terms")
    op.drop_table("academic_terms")
    op.drop_index("ix_academic_years_is_current", table_name="academic_years")
    op.drop_index("ix_academic_years_name", table_name="academic_years")
    op.drop_table("academic_years")
    class_section_enum.drop(op.get_bind(), checkfirst=True)
    sub_term_name_enum.drop(op.get_bind(), checkfirst=True)

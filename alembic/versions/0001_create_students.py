"""create students and dropped_access_numbers

Revision ID: 0001_create_students
Revises:
Create Date: 2026-10-18

Access numbers and admission ids are unique among active students only,
so flagged rows keep their identifiers for reference.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_create_students"
down_revision = None
branch_labels = None
depends_on = None

STATUSES = ("active", "left", "transferred", "expelled", "graduated", "re-admitted")


def upgrade() -> None:
    op.execute(
        "CREATE TYPE student_status AS ENUM ("
        + ", ".join(f"'{s}'" for s in STATUSES)
        + ")"
    )
    op.create_table(
        "students",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("class_name", sa.String(100), nullable=False),
        sa.Column("stream", sa.String(100), nullable=False, server_default=""),
        sa.Column("parent_name", sa.String(255), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(*STATUSES, name="student_status", create_type=False),
            nullable=False,
            server_default="active",
        ),
        sa.Column("access_number", sa.String(20), nullable=True),
        sa.Column("admission_id", sa.String(20), nullable=True),
        sa.Column("flag_comment", sa.Text(), nullable=True),
        sa.Column("is_readmission", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_students_id", "students", ["id"])
    op.create_index("ix_students_name", "students", ["name"])
    op.create_index("ix_students_class_name", "students", ["class_name"])
    op.create_index("ix_students_status", "students", ["status"])
    op.create_index("ix_students_access_number", "students", ["access_number"])
    op.create_index("ix_students_admission_id", "students", ["admission_id"])
    op.create_index("ix_students_created_at", "students", ["created_at"])
    op.create_index(
        "ux_students_active_access_number",
        "students",
        ["access_number"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "ux_students_active_admission_id",
        "students",
        ["admission_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "dropped_access_numbers",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("access_number", sa.String(20), nullable=False),
        sa.Column("class_name", sa.String(100), nullable=True),
        sa.Column("stream", sa.String(100), nullable=True),
        sa.Column("admission_id", sa.String(20), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("dropped_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dropped_access_numbers_id", "dropped_access_numbers", ["id"])
    op.create_index(
        "ix_dropped_access_numbers_access_number",
        "dropped_access_numbers",
        ["access_number"],
        unique=True,
    )
    op.create_index("ix_dropped_access_numbers_dropped_at", "dropped_access_numbers", ["dropped_at"])
    op.create_index("ix_dropped_access_numbers_created_at", "dropped_access_numbers", ["created_at"])


def downgrade() -> None:
    op.drop_table("dropped_access_numbers")
    op.drop_table("students")
    op.execute("DROP TYPE IF EXISTS student_status")

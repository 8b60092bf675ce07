"""create course hierarchy and progress tables

Revision ID: 3b1e9c0d7a42
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1e9c0d7a42"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("title", sa.String(length=500), nullable=False),
    )
    op.create_table(
        "course_modules",
        sa.Column(
            "course_id",
            sa.String(length=255),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("position", sa.Integer(), primary_key=True),
        sa.Column("module_id", sa.String(length=512), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
    )
    op.create_table(
        "leaf_units",
        sa.Column("course_id", sa.String(length=255), primary_key=True),
        sa.Column("module_position", sa.Integer(), primary_key=True),
        sa.Column("position", sa.Integer(), primary_key=True),
        sa.Column("leaf_id", sa.String(length=512), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.ForeignKeyConstraint(
            ["course_id", "module_position"],
            ["course_modules.course_id", "course_modules.position"],
            ondelete="CASCADE",
        ),
    )
    op.create_table(
        "enrollments",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("course_id", sa.String(length=255), primary_key=True),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_leaves", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "completed_leaves", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "progress_percent", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_enrollments_course_id", "enrollments", ["course_id"])
    op.create_table(
        "progress_entries",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("course_id", sa.String(length=255), primary_key=True),
        sa.Column("module_id", sa.String(length=512), primary_key=True),
        sa.Column("leaf_id", sa.String(length=512), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "completed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_visited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id", "course_id"],
            ["enrollments.user_id", "enrollments.course_id"],
            ondelete="CASCADE",
        ),
    )


def downgrade() -> None:
    op.drop_table("progress_entries")
    op.drop_index("ix_enrollments_course_id", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_table("leaf_units")
    op.drop_table("course_modules")
    op.drop_table("courses")

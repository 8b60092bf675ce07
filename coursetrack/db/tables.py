"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in coursetrack/models/.
Repos convert between rows and dataclasses.  Course and user IDs are
opaque strings owned by the CRUD/auth layer.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from coursetrack.db.engine import Base

# --- Course hierarchy ---


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)


class CourseModuleRow(Base):
    __tablename__ = "course_modules"

    course_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    module_id: Mapped[str | None] = mapped_column(String(512), nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)


class LeafUnitRow(Base):
    __tablename__ = "leaf_units"

    course_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    module_position: Mapped[int] = mapped_column(Integer, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    leaf_id: Mapped[str | None] = mapped_column(String(512), nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ["course_id", "module_position"],
            ["course_modules.course_id", "course_modules.position"],
            ondelete="CASCADE",
        ),
    )


# --- Enrollments ---
# No FK to courses: enrollments may briefly outlive a deleted course while
# the purge is in flight, and readers filter those out.


class EnrollmentRow(Base):
    __tablename__ = "enrollments"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(255), primary_key=True, index=True)
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    total_leaves: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_leaves: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ProgressEntryRow(Base):
    __tablename__ = "progress_entries"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    module_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    leaf_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    # Order of the entry inside the enrollment (target order, then history)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_visited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id", "course_id"],
            ["enrollments.user_id", "enrollments.course_id"],
            ondelete="CASCADE",
        ),
    )

"""PostgreSQL implementation of EnrollmentRepo.

The optimistic version check is a conditional UPDATE:

    UPDATE enrollments SET ..., version = :v + 1
    WHERE user_id = :u AND course_id = :c AND version = :v

Zero affected rows means another writer got there first (or the
enrollment was purged), reported as PersistenceConflictError.  The
entry rows are replaced inside the same transaction.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.db.tables import EnrollmentRow, ProgressEntryRow
from coursetrack.models.enrollment import Enrollment, ProgressEntry
from coursetrack.services.errors import PersistenceConflictError


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str, course_id: str) -> Enrollment | None:
        async with self._session_factory() as session:
            row = await session.get(EnrollmentRow, (user_id, course_id))
            if row is None:
                return None
            entries = (
                await session.execute(
                    select(ProgressEntryRow)
                    .where(
                        ProgressEntryRow.user_id == user_id,
                        ProgressEntryRow.course_id == course_id,
                    )
                    .order_by(ProgressEntryRow.position)
                )
            ).scalars().all()
        return _row_to_enrollment(row, entries)

    async def create(self, enrollment: Enrollment) -> Enrollment | None:
        stored = replace(enrollment, version=1)
        async with self._session_factory() as session, session.begin():
            stmt = (
                pg_insert(EnrollmentRow)
                .values(**_enrollment_values(stored))
                .on_conflict_do_nothing(index_elements=["user_id", "course_id"])
                .returning(EnrollmentRow.user_id)
            )
            if (await session.execute(stmt)).first() is None:
                return None
            session.add_all(_entry_rows(stored))
        return stored

    async def save(self, enrollment: Enrollment) -> Enrollment:
        updated = replace(enrollment, version=enrollment.version + 1)
        async with self._session_factory() as session, session.begin():
            stmt = (
                update(EnrollmentRow)
                .where(
                    EnrollmentRow.user_id == enrollment.user_id,
                    EnrollmentRow.course_id == enrollment.course_id,
                    EnrollmentRow.version == enrollment.version,
                )
                .values(**_enrollment_values(updated))
            )
            result = await session.execute(stmt)
            if result.rowcount != 1:
                raise PersistenceConflictError(enrollment.user_id, enrollment.course_id)

            await session.execute(
                delete(ProgressEntryRow).where(
                    ProgressEntryRow.user_id == enrollment.user_id,
                    ProgressEntryRow.course_id == enrollment.course_id,
                )
            )
            session.add_all(_entry_rows(updated))
        return updated

    async def delete(self, user_id: str, course_id: str) -> bool:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(EnrollmentRow).where(
                    EnrollmentRow.user_id == user_id,
                    EnrollmentRow.course_id == course_id,
                )
            )
            return result.rowcount > 0

    async def list_user_ids(self, course_id: str) -> list[str]:
        async with self._session_factory() as session:
            rows = await session.execute(
                select(EnrollmentRow.user_id)
                .where(EnrollmentRow.course_id == course_id)
                .order_by(EnrollmentRow.user_id)
            )
            return list(rows.scalars().all())

    async def list_for_user(self, user_id: str) -> list[Enrollment]:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(EnrollmentRow)
                    .where(EnrollmentRow.user_id == user_id)
                    .order_by(EnrollmentRow.enrolled_at.desc())
                )
            ).scalars().all()
            entry_rows = (
                await session.execute(
                    select(ProgressEntryRow)
                    .where(ProgressEntryRow.user_id == user_id)
                    .order_by(ProgressEntryRow.course_id, ProgressEntryRow.position)
                )
            ).scalars().all()

        by_course: dict[str, list[ProgressEntryRow]] = defaultdict(list)
        for entry in entry_rows:
            by_course[entry.course_id].append(entry)
        return [_row_to_enrollment(row, by_course[row.course_id]) for row in rows]

    async def list_course_ids(self) -> list[str]:
        async with self._session_factory() as session:
            rows = await session.execute(
                select(EnrollmentRow.course_id)
                .distinct()
                .order_by(EnrollmentRow.course_id)
            )
            return list(rows.scalars().all())


def _enrollment_values(enrollment: Enrollment) -> dict:
    return {
        "user_id": enrollment.user_id,
        "course_id": enrollment.course_id,
        "enrolled_at": enrollment.enrolled_at,
        "last_accessed_at": enrollment.last_accessed_at,
        "total_leaves": enrollment.total_leaves,
        "completed_leaves": enrollment.completed_leaves,
        "progress_percent": enrollment.progress_percent,
        "version": enrollment.version,
    }


def _entry_rows(enrollment: Enrollment) -> list[ProgressEntryRow]:
    return [
        ProgressEntryRow(
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
            module_id=e.module_id,
            leaf_id=e.leaf_id,
            position=position,
            completed=e.completed,
            completed_at=e.completed_at,
            last_visited_at=e.last_visited_at,
            archived=e.archived,
            archived_at=e.archived_at,
        )
        for position, e in enumerate(enrollment.entries)
    ]


def _row_to_enrollment(
    row: EnrollmentRow, entries: list[ProgressEntryRow]
) -> Enrollment:
    return Enrollment(
        user_id=row.user_id,
        course_id=row.course_id,
        enrolled_at=row.enrolled_at,
        last_accessed_at=row.last_accessed_at,
        total_leaves=row.total_leaves,
        completed_leaves=row.completed_leaves,
        progress_percent=row.progress_percent,
        version=row.version,
        entries=tuple(
            ProgressEntry(
                module_id=e.module_id,
                leaf_id=e.leaf_id,
                completed=e.completed,
                completed_at=e.completed_at,
                last_visited_at=e.last_visited_at,
                archived=e.archived,
                archived_at=e.archived_at,
            )
            for e in entries
        ),
    )

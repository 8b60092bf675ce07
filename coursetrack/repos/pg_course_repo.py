"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.db.tables import CourseModuleRow, CourseRow, LeafUnitRow
from coursetrack.models.course import Course, CourseModule, LeafUnit


class PgCourseRepo:
    """Satisfies the CourseRepo Protocol using PostgreSQL via SQLAlchemy.

    A course is stored as one row per course, module and leaf; `save`
    replaces the whole hierarchy in a single transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, course_id: str) -> Course | None:
        async with self._session_factory() as session:
            row = await session.get(CourseRow, course_id)
            if row is None:
                return None
            modules = (
                await session.execute(
                    select(CourseModuleRow)
                    .where(CourseModuleRow.course_id == course_id)
                    .order_by(CourseModuleRow.position)
                )
            ).scalars().all()
            leaves = (
                await session.execute(
                    select(LeafUnitRow)
                    .where(LeafUnitRow.course_id == course_id)
                    .order_by(LeafUnitRow.module_position, LeafUnitRow.position)
                )
            ).scalars().all()
        return _rows_to_course(row, modules, leaves)

    async def exists(self, course_id: str) -> bool:
        async with self._session_factory() as session:
            stmt = select(CourseRow.id).where(CourseRow.id == course_id)
            return (await session.execute(stmt)).scalar_one_or_none() is not None

    async def save(self, course: Course) -> None:
        async with self._session_factory() as session, session.begin():
            upsert = (
                pg_insert(CourseRow)
                .values(id=course.id, title=course.title)
                .on_conflict_do_update(
                    index_elements=[CourseRow.id], set_={"title": course.title}
                )
            )
            await session.execute(upsert)
            await session.execute(
                delete(LeafUnitRow).where(LeafUnitRow.course_id == course.id)
            )
            await session.execute(
                delete(CourseModuleRow).where(CourseModuleRow.course_id == course.id)
            )
            await session.flush()

            for module_position, module in enumerate(course.modules, start=1):
                session.add(
                    CourseModuleRow(
                        course_id=course.id,
                        position=module_position,
                        module_id=module.id,
                        title=module.title,
                    )
                )
            await session.flush()
            for module_position, module in enumerate(course.modules, start=1):
                for leaf_position, leaf in enumerate(module.leaves, start=1):
                    session.add(
                        LeafUnitRow(
                            course_id=course.id,
                            module_position=module_position,
                            position=leaf_position,
                            leaf_id=leaf.id,
                            title=leaf.title,
                        )
                    )

    async def delete(self, course_id: str) -> bool:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(CourseRow).where(CourseRow.id == course_id)
            )
            return result.rowcount > 0

    async def list_ids(self) -> list[str]:
        async with self._session_factory() as session:
            rows = await session.execute(select(CourseRow.id).order_by(CourseRow.id))
            return list(rows.scalars().all())


def _rows_to_course(
    row: CourseRow,
    modules: list[CourseModuleRow],
    leaves: list[LeafUnitRow],
) -> Course:
    leaves_by_module: dict[int, list[LeafUnit]] = defaultdict(list)
    for leaf in leaves:
        leaves_by_module[leaf.module_position].append(
            LeafUnit(title=leaf.title, id=leaf.leaf_id, position=leaf.position)
        )
    return Course(
        id=row.id,
        title=row.title,
        modules=tuple(
            CourseModule(
                title=m.title,
                id=m.module_id,
                position=m.position,
                leaves=tuple(leaves_by_module[m.position]),
            )
            for m in modules
        ),
    )

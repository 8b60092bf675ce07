from __future__ import annotations

from typing import Protocol

from coursetrack.models.course import Course


class CourseRepo(Protocol):
    async def get(self, course_id: str) -> Course | None: ...
    async def exists(self, course_id: str) -> bool: ...
    async def save(self, course: Course) -> None: ...
    async def delete(self, course_id: str) -> bool: ...
    async def list_ids(self) -> list[str]: ...


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, Course] = {}

    async def get(self, course_id: str) -> Course | None:
        return self._by_id.get(course_id)

    async def exists(self, course_id: str) -> bool:
        return course_id in self._by_id

    async def save(self, course: Course) -> None:
        self._by_id[course.id] = course

    async def delete(self, course_id: str) -> bool:
        return self._by_id.pop(course_id, None) is not None

    async def list_ids(self) -> list[str]:
        return sorted(self._by_id)

from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from coursetrack.models.enrollment import Enrollment
from coursetrack.services.errors import PersistenceConflictError


class EnrollmentRepo(Protocol):
    """Per-(user, course) enrollment storage.

    Every method is its own unit of work.  `create` returns the stored copy,
    or None when the pair is already enrolled.  `save` is a compare-and-set on
    `Enrollment.version`: it raises PersistenceConflictError when the stored
    version differs (or the record is gone) and returns the stored copy
    with the bumped version otherwise.
    """

    async def get(self, user_id: str, course_id: str) -> Enrollment | None: ...
    async def create(self, enrollment: Enrollment) -> Enrollment | None: ...
    async def save(self, enrollment: Enrollment) -> Enrollment: ...
    async def delete(self, user_id: str, course_id: str) -> bool: ...
    async def list_user_ids(self, course_id: str) -> list[str]: ...
    async def list_for_user(self, user_id: str) -> list[Enrollment]: ...
    async def list_course_ids(self) -> list[str]: ...


class InMemoryEnrollmentRepo:
    # No await between read and write, so each method is atomic on the loop.

    def __init__(self) -> None:
        self._store: dict[tuple[str, str], Enrollment] = {}

    async def get(self, user_id: str, course_id: str) -> Enrollment | None:
        return self._store.get((user_id, course_id))

    async def create(self, enrollment: Enrollment) -> Enrollment | None:
        key = (enrollment.user_id, enrollment.course_id)
        if key in self._store:
            return None
        stored = replace(enrollment, version=1)
        self._store[key] = stored
        return stored

    async def save(self, enrollment: Enrollment) -> Enrollment:
        key = (enrollment.user_id, enrollment.course_id)
        stored = self._store.get(key)
        if stored is None or stored.version != enrollment.version:
            raise PersistenceConflictError(enrollment.user_id, enrollment.course_id)
        updated = replace(enrollment, version=enrollment.version + 1)
        self._store[key] = updated
        return updated

    async def delete(self, user_id: str, course_id: str) -> bool:
        return self._store.pop((user_id, course_id), None) is not None

    async def list_user_ids(self, course_id: str) -> list[str]:
        return sorted(u for (u, c) in self._store if c == course_id)

    async def list_for_user(self, user_id: str) -> list[Enrollment]:
        found = [e for (u, _), e in self._store.items() if u == user_id]
        return sorted(found, key=lambda e: e.enrolled_at, reverse=True)

    async def list_course_ids(self) -> list[str]:
        return sorted({c for (_, c) in self._store})

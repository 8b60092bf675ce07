"""Enrollment lifecycle: enroll, unenroll, course-deletion purge, cleanup.

A fresh enrollment gets one incomplete entry per leaf of the course's
current index.  Enrolling twice is not an error; the existing record is
returned untouched, including when two enroll calls race and the
repository's create refuses the second one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from coursetrack.core.metrics import ENROLLMENTS_REMOVED
from coursetrack.models.enrollment import Enrollment, ProgressEntry
from coursetrack.repos.course_repo import CourseRepo
from coursetrack.repos.enrollment_repo import EnrollmentRepo
from coursetrack.services.batch import UserFailure, run_per_user
from coursetrack.services.cache import CacheService
from coursetrack.services.course_indexing import index_course
from coursetrack.services.enrollment_updates import invalidate_progress, utcnow
from coursetrack.services.errors import NotFoundError, PersistenceConflictError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EnrollResult:
    already_enrolled: bool
    enrollment: Enrollment


@dataclass(frozen=True, slots=True)
class CourseDeletionResult:
    course_id: str
    users_updated: int
    users_failed: tuple[UserFailure, ...] = ()


@dataclass(frozen=True, slots=True)
class CleanupResult:
    stale_course_ids: tuple[str, ...]
    enrollments_removed: int
    users_failed: tuple[UserFailure, ...] = ()


class EnrollmentService:
    def __init__(
        self,
        course_repo: CourseRepo,
        enrollment_repo: EnrollmentRepo,
        cache: CacheService,
        *,
        concurrency: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._courses = course_repo
        self._enrollments = enrollment_repo
        self._cache = cache
        self._concurrency = concurrency
        self._clock = clock

    async def enroll(self, user_id: str, course_id: str) -> EnrollResult:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFoundError(f"course {course_id} not found")

        existing = await self._enrollments.get(user_id, course_id)
        if existing is not None:
            logger.info("Already enrolled user=%s course=%s", user_id, course_id)
            return EnrollResult(already_enrolled=True, enrollment=existing)

        index = index_course(course).index
        enrollment = Enrollment.new(
            user_id=user_id,
            course_id=course_id,
            now=self._clock(),
            total_leaves=index.total_leaves,
            entries=tuple(
                ProgressEntry(module_id=leaf.module_id, leaf_id=leaf.leaf_id)
                for leaf in index.leaves
            ),
        )

        stored = await self._enrollments.create(enrollment)
        if stored is None:
            # A concurrent enroll for the same pair won the create.
            winner = await self._enrollments.get(user_id, course_id)
            if winner is None:
                raise PersistenceConflictError(user_id, course_id)
            logger.info("Enroll race absorbed user=%s course=%s", user_id, course_id)
            return EnrollResult(already_enrolled=True, enrollment=winner)

        await invalidate_progress(self._cache, user_id, course_id)
        logger.info(
            "Enrolled user=%s course=%s total_leaves=%d",
            user_id,
            course_id,
            index.total_leaves,
        )
        return EnrollResult(already_enrolled=False, enrollment=stored)

    async def unenroll(self, user_id: str, course_id: str) -> bool:
        removed = await self._enrollments.delete(user_id, course_id)
        if removed:
            ENROLLMENTS_REMOVED.labels(reason="unenrolled").inc()
            await invalidate_progress(self._cache, user_id, course_id)
            logger.info("Unenrolled user=%s course=%s", user_id, course_id)
        return removed

    async def on_course_deleted(self, course_id: str) -> CourseDeletionResult:
        """Remove every enrollment of a deleted course, one user at a time."""
        user_ids = await self._enrollments.list_user_ids(course_id)
        outcome = await self._purge(course_id, user_ids, reason="course_deleted")
        logger.info(
            "Purged deleted course=%s users=%d failed=%d",
            course_id,
            len(outcome.changed),
            len(outcome.failed),
        )
        return CourseDeletionResult(
            course_id=course_id,
            users_updated=len(outcome.changed),
            users_failed=tuple(outcome.failed),
        )

    async def cleanup_stale_enrollments(self) -> CleanupResult:
        """Drop enrollments whose course no longer exists.

        Catches purges that never ran, e.g. a course row deleted by hand
        or a worker that died mid-task.
        """
        stale: list[str] = []
        for course_id in await self._enrollments.list_course_ids():
            if not await self._courses.exists(course_id):
                stale.append(course_id)

        removed = 0
        failures: list[UserFailure] = []
        for course_id in stale:
            user_ids = await self._enrollments.list_user_ids(course_id)
            outcome = await self._purge(course_id, user_ids, reason="stale")
            removed += len(outcome.changed)
            failures.extend(outcome.failed)

        if stale:
            logger.warning(
                "Cleaned up stale enrollments courses=%s removed=%d failed=%d",
                stale,
                removed,
                len(failures),
            )
        return CleanupResult(
            stale_course_ids=tuple(stale),
            enrollments_removed=removed,
            users_failed=tuple(failures),
        )

    async def _purge(self, course_id: str, user_ids: list[str], *, reason: str):
        async def _remove(user_id: str) -> bool | None:
            if not await self._enrollments.delete(user_id, course_id):
                return None
            ENROLLMENTS_REMOVED.labels(reason=reason).inc()
            await invalidate_progress(self._cache, user_id, course_id)
            return True

        return await run_per_user(
            user_ids,
            _remove,
            concurrency=self._concurrency,
            label=f"enrollment purge course={course_id}",
        )

"""Course-wide reconciliation and the repair entry points.

reconcile_course() is the batch driver: given a target index it realigns
every enrollment of the course, one independent version-checked write
per user.  repair_course() re-indexes the stored hierarchy first, so it
can be run at any time to correct drift, however it came about.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from coursetrack.core.metrics import RECONCILE_DURATION, RECONCILED_USERS
from coursetrack.models.course import CourseIndex
from coursetrack.repos.course_repo import CourseRepo
from coursetrack.repos.enrollment_repo import EnrollmentRepo
from coursetrack.services.batch import UserFailure, run_per_user
from coursetrack.services.cache import CacheService
from coursetrack.services.course_indexing import index_course
from coursetrack.services.enrollment_updates import (
    invalidate_progress,
    update_enrollment,
    utcnow,
)
from coursetrack.services.errors import NotEnrolledError, NotFoundError
from coursetrack.services.reconciler import reconcile_enrollment

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RepairResult:
    """Outcome of one course-wide reconciliation run.

    users_updated counts users whose enrollment now matches the index
    (whether or not it had to be rewritten); users_changed counts the
    rewrites.
    """

    course_id: str
    total_modules: int
    total_leaves: int
    users_updated: int
    users_changed: int
    users_failed: tuple[UserFailure, ...] = ()


@dataclass(frozen=True, slots=True)
class CourseRepairFailure:
    course_id: str
    error: str
    code: str


class RepairService:
    def __init__(
        self,
        course_repo: CourseRepo,
        enrollment_repo: EnrollmentRepo,
        cache: CacheService,
        *,
        concurrency: int,
        write_attempts: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._courses = course_repo
        self._enrollments = enrollment_repo
        self._cache = cache
        self._concurrency = concurrency
        self._write_attempts = write_attempts
        self._clock = clock

    async def reconcile_course(self, index: CourseIndex) -> RepairResult:
        course_id = index.course_id
        user_ids = await self._enrollments.list_user_ids(course_id)
        now = self._clock()

        async def _reconcile_user(user_id: str) -> bool | None:
            try:
                _, changed = await update_enrollment(
                    self._enrollments,
                    user_id,
                    course_id,
                    lambda enrollment: reconcile_enrollment(enrollment, index, now),
                    attempts=self._write_attempts,
                    operation="reconcile",
                )
            except NotEnrolledError:
                # Unenrolled after the user list was read.
                return None
            if changed:
                await invalidate_progress(self._cache, user_id, course_id)
            logger.debug(
                "Reconciled user=%s course=%s changed=%s", user_id, course_id, changed
            )
            return changed

        start = time.perf_counter()
        outcome = await run_per_user(
            user_ids,
            _reconcile_user,
            concurrency=self._concurrency,
            label=f"reconcile course={course_id}",
        )
        RECONCILE_DURATION.observe(time.perf_counter() - start)
        RECONCILED_USERS.labels(result="changed").inc(len(outcome.changed))
        RECONCILED_USERS.labels(result="unchanged").inc(len(outcome.unchanged))
        RECONCILED_USERS.labels(result="failed").inc(len(outcome.failed))

        logger.info(
            "Reconciled course=%s leaves=%d users=%d changed=%d failed=%d",
            course_id,
            index.total_leaves,
            outcome.succeeded,
            len(outcome.changed),
            len(outcome.failed),
        )
        return RepairResult(
            course_id=course_id,
            total_modules=index.total_modules,
            total_leaves=index.total_leaves,
            users_updated=outcome.succeeded,
            users_changed=len(outcome.changed),
            users_failed=tuple(outcome.failed),
        )

    async def repair_course(self, course_id: str) -> RepairResult:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFoundError(f"course {course_id} not found")

        indexed = index_course(course)
        if indexed.course != course:
            # Generated IDs are persisted so they stay stable until the
            # hierarchy is edited again.
            await self._courses.save(indexed.course)
            logger.info("Persisted assigned IDs for course=%s", course_id)

        return await self.reconcile_course(indexed.index)

    async def repair_all_courses(self) -> list[RepairResult | CourseRepairFailure]:
        return await self.repair_courses(await self._courses.list_ids())

    async def repair_courses(
        self, course_ids: list[str]
    ) -> list[RepairResult | CourseRepairFailure]:
        """Repair each course in turn; one failing course never stops the rest."""
        results: list[RepairResult | CourseRepairFailure] = []
        for course_id in course_ids:
            try:
                results.append(await self.repair_course(course_id))
            except Exception as exc:
                logger.exception("Repair failed for course=%s", course_id)
                results.append(
                    CourseRepairFailure(
                        course_id=course_id,
                        error=str(exc),
                        code=getattr(exc, "code", type(exc).__name__),
                    )
                )
        return results

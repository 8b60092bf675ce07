"""Leaf completion and progress reads.

Reads go through a read-through cache (see services/cache.py).  Every
write path (enroll, complete, reconcile, purge) deletes the cached view
for the (user, course) pair it touched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

from pydantic import TypeAdapter

from coursetrack.core.metrics import CACHE_OPERATIONS, LEAF_COMPLETIONS
from coursetrack.models.enrollment import Enrollment, ProgressEntry
from coursetrack.repos.course_repo import CourseRepo
from coursetrack.repos.enrollment_repo import EnrollmentRepo
from coursetrack.services.cache import (
    CacheService,
    progress_generation,
    progress_key,
)
from coursetrack.services.enrollment_updates import (
    invalidate_progress,
    update_enrollment,
    utcnow,
)
from coursetrack.services.reconciler import compute_aggregates

logger = logging.getLogger(__name__)

# Recent activity shown per course in the all-courses listing
SUMMARY_RECENT_LIMIT = 3


@dataclass(frozen=True, slots=True)
class CompletionResult:
    total_leaves: int
    completed_leaves: int
    progress_percent: int
    newly_completed: bool


@dataclass(frozen=True, slots=True)
class ProgressView:
    course_id: str
    enrolled: bool
    total_leaves: int = 0
    completed_leaves: int = 0
    progress_percent: int = 0
    enrolled_at: datetime | None = None
    last_accessed_at: datetime | None = None
    entries: tuple[ProgressEntry, ...] = ()
    recent_activity: tuple[ProgressEntry, ...] = ()


_VIEW_ADAPTER = TypeAdapter(ProgressView)


def recent_activity(
    entries: list[ProgressEntry], limit: int
) -> tuple[ProgressEntry, ...]:
    visited = [e for e in entries if e.is_active and e.last_visited_at is not None]
    visited.sort(key=lambda e: e.last_visited_at, reverse=True)
    return tuple(visited[:limit])


def build_view(enrollment: Enrollment, recent_limit: int) -> ProgressView:
    active = enrollment.active_entries
    return ProgressView(
        course_id=enrollment.course_id,
        enrolled=True,
        total_leaves=enrollment.total_leaves,
        completed_leaves=enrollment.completed_leaves,
        progress_percent=enrollment.progress_percent,
        enrolled_at=enrollment.enrolled_at,
        last_accessed_at=enrollment.last_accessed_at,
        entries=tuple(active),
        recent_activity=recent_activity(active, recent_limit),
    )


class ProgressService:
    def __init__(
        self,
        course_repo: CourseRepo,
        enrollment_repo: EnrollmentRepo,
        cache: CacheService,
        *,
        write_attempts: int,
        recent_activity_limit: int,
        cache_ttl: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._courses = course_repo
        self._enrollments = enrollment_repo
        self._cache = cache
        self._write_attempts = write_attempts
        self._recent_limit = recent_activity_limit
        self._cache_ttl = cache_ttl
        self._clock = clock

    async def mark_leaf_complete(
        self, user_id: str, course_id: str, module_id: str, leaf_id: str
    ) -> CompletionResult:
        """Mark one leaf completed for a user.

        Raises NotEnrolledError when the user has no enrollment in the
        course.  A leaf the enrollment doesn't track yet gets an entry on
        the spot; the next reconciliation settles it against the index.
        """
        now = self._clock()
        newly_completed = False

        def _complete(enrollment: Enrollment) -> Enrollment:
            nonlocal newly_completed
            entries = list(enrollment.entries)
            key = (module_id, leaf_id)
            position = next(
                (i for i, e in enumerate(entries) if e.key == key), None
            )
            if position is None:
                logger.warning(
                    "Completion for untracked leaf user=%s course=%s module=%s leaf=%s",
                    user_id,
                    course_id,
                    module_id,
                    leaf_id,
                )
                entries.append(ProgressEntry(module_id=module_id, leaf_id=leaf_id))
                position = len(entries) - 1

            entry = entries[position]
            newly_completed = not entry.completed
            entries[position] = replace(
                entry,
                completed=True,
                completed_at=entry.completed_at if entry.completed else now,
                last_visited_at=now,
                archived=False,
                archived_at=None,
            )
            aggregates = compute_aggregates(entries, enrollment.total_leaves)
            return replace(
                enrollment,
                entries=tuple(entries),
                completed_leaves=aggregates.completed_leaves,
                progress_percent=aggregates.progress_percent,
                last_accessed_at=now,
            )

        enrollment, _ = await update_enrollment(
            self._enrollments,
            user_id,
            course_id,
            _complete,
            attempts=self._write_attempts,
            operation="complete",
        )
        await invalidate_progress(self._cache, user_id, course_id)

        LEAF_COMPLETIONS.labels(
            transition="first" if newly_completed else "repeat"
        ).inc()
        logger.info(
            "Leaf completed user=%s course=%s leaf=%s/%s progress=%d%%",
            user_id,
            course_id,
            module_id,
            leaf_id,
            enrollment.progress_percent,
        )
        return CompletionResult(
            total_leaves=enrollment.total_leaves,
            completed_leaves=enrollment.completed_leaves,
            progress_percent=enrollment.progress_percent,
            newly_completed=newly_completed,
        )

    async def get_progress(self, user_id: str, course_id: str) -> ProgressView:
        # Read the generation before loading so a write during the load
        # sends our set to a retired key.
        generation = await progress_generation(self._cache, user_id, course_id)
        key = progress_key(user_id, course_id, generation)

        cached = await self._cache.get(key)
        if cached is not None:
            CACHE_OPERATIONS.labels(operation="hit").inc()
            return _VIEW_ADAPTER.validate_json(cached)

        CACHE_OPERATIONS.labels(operation="miss").inc()
        view = await self._load_view(user_id, course_id)
        await self._cache.set(
            key, _VIEW_ADAPTER.dump_json(view).decode(), self._cache_ttl
        )
        return view

    async def list_user_progress(self, user_id: str) -> list[ProgressView]:
        """All of a user's enrollments, most recently enrolled first.

        Enrollments of courses that no longer exist are left out; the
        cleanup job removes them.
        """
        views = []
        for enrollment in await self._enrollments.list_for_user(user_id):
            if not await self._courses.exists(enrollment.course_id):
                logger.debug(
                    "Skipping stale enrollment user=%s course=%s",
                    user_id,
                    enrollment.course_id,
                )
                continue
            views.append(build_view(enrollment, SUMMARY_RECENT_LIMIT))
        return views

    async def _load_view(self, user_id: str, course_id: str) -> ProgressView:
        enrollment = await self._enrollments.get(user_id, course_id)
        if enrollment is None or not await self._courses.exists(course_id):
            return ProgressView(course_id=course_id, enrolled=False)
        return build_view(enrollment, self._recent_limit)

"""Version-checked read-modify-write for a single enrollment.

Completion calls and course-wide reconciliation can touch the same
enrollment at the same time.  Every writer goes through
update_enrollment(): read the freshest copy, apply a pure mutation, save
with the version it read, and start over from a fresh read if someone
else saved in between.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from coursetrack.core.metrics import ENROLLMENT_WRITE_CONFLICTS
from coursetrack.models.enrollment import Enrollment
from coursetrack.repos.enrollment_repo import EnrollmentRepo
from coursetrack.services.cache import (
    CacheService,
    progress_generation_key,
    progress_key,
)
from coursetrack.services.errors import NotEnrolledError, PersistenceConflictError

logger = logging.getLogger(__name__)

# Returns the new enrollment, or None when nothing needs to change.
Mutation = Callable[[Enrollment], Enrollment | None]


def utcnow() -> datetime:
    return datetime.now(UTC)


async def update_enrollment(
    repo: EnrollmentRepo,
    user_id: str,
    course_id: str,
    mutate: Mutation,
    *,
    attempts: int,
    operation: str,
) -> tuple[Enrollment, bool]:
    """Apply `mutate` to the stored enrollment; returns (enrollment, changed).

    Raises NotEnrolledError if the enrollment is missing (including when it
    was purged between retries) and PersistenceConflictError once
    `attempts` saves in a row have lost the race.
    """
    for attempt in range(1, attempts + 1):
        current = await repo.get(user_id, course_id)
        if current is None:
            raise NotEnrolledError(user_id, course_id)

        updated = mutate(current)
        if updated is None:
            return current, False

        try:
            return await repo.save(updated), True
        except PersistenceConflictError:
            ENROLLMENT_WRITE_CONFLICTS.labels(operation=operation).inc()
            logger.info(
                "Enrollment write conflict user=%s course=%s op=%s attempt=%d/%d",
                user_id,
                course_id,
                operation,
                attempt,
                attempts,
            )

    logger.warning(
        "Giving up on enrollment write user=%s course=%s op=%s after %d attempts",
        user_id,
        course_id,
        operation,
        attempts,
    )
    raise PersistenceConflictError(user_id, course_id)


async def invalidate_progress(
    cache: CacheService, user_id: str, course_id: str
) -> None:
    """Retire the cached view; readers mid-load can no longer refill it."""
    generation = await cache.incr(progress_generation_key(user_id, course_id))
    await cache.delete(progress_key(user_id, course_id, generation - 1))

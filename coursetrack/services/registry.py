"""Module-level service singletons shared by the API and the worker.

Repositories are chosen the same way as the cache and task queue: Postgres
when DATABASE_URL is configured, in-memory otherwise.
"""

from __future__ import annotations

from coursetrack.core.config import SETTINGS
from coursetrack.db.engine import async_session_factory
from coursetrack.repos.course_repo import CourseRepo, InMemoryCourseRepo
from coursetrack.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from coursetrack.repos.pg_course_repo import PgCourseRepo
from coursetrack.repos.pg_enrollment_repo import PgEnrollmentRepo
from coursetrack.services.cache import cache_service
from coursetrack.services.course_service import CourseService
from coursetrack.services.enrollment_service import EnrollmentService
from coursetrack.services.progress_service import ProgressService
from coursetrack.services.repair_service import RepairService

if async_session_factory is not None:
    course_repo: CourseRepo = PgCourseRepo(async_session_factory)
    enrollment_repo: EnrollmentRepo = PgEnrollmentRepo(async_session_factory)
else:
    course_repo = InMemoryCourseRepo()
    enrollment_repo = InMemoryEnrollmentRepo()

enrollment_service = EnrollmentService(
    course_repo,
    enrollment_repo,
    cache_service,
    concurrency=SETTINGS.reconcile_concurrency,
)
progress_service = ProgressService(
    course_repo,
    enrollment_repo,
    cache_service,
    write_attempts=SETTINGS.enrollment_write_attempts,
    recent_activity_limit=SETTINGS.recent_activity_limit,
    cache_ttl=SETTINGS.progress_cache_ttl,
)
repair_service = RepairService(
    course_repo,
    enrollment_repo,
    cache_service,
    concurrency=SETTINGS.reconcile_concurrency,
    write_attempts=SETTINGS.enrollment_write_attempts,
)
course_service = CourseService(course_repo, enrollment_service, repair_service)

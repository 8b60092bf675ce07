from __future__ import annotations

import asyncio
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import coursetrack` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coursetrack.main import app  # noqa: E402
from coursetrack.models.course import Course  # noqa: E402
from coursetrack.repos.course_repo import InMemoryCourseRepo  # noqa: E402
from coursetrack.repos.enrollment_repo import InMemoryEnrollmentRepo  # noqa: E402
from coursetrack.services import registry  # noqa: E402
from coursetrack.services.cache import InMemoryCacheService, cache_service  # noqa: E402
from coursetrack.services.course_service import CourseService  # noqa: E402
from coursetrack.services.enrollment_service import EnrollmentService  # noqa: E402
from coursetrack.services.progress_service import ProgressService  # noqa: E402
from coursetrack.services.repair_service import RepairService  # noqa: E402
from coursetrack.services.task_queue import task_queue  # noqa: E402

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeClock:
    """Deterministic clock; every call advances one minute."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(minutes=1)
        return current


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the registry's in-memory repositories between tests."""
    if hasattr(registry.course_repo, "_by_id"):
        registry.course_repo._by_id.clear()  # type: ignore[union-attr]
    if hasattr(registry.enrollment_repo, "_store"):
        registry.enrollment_repo._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def user_headers(user_id: str = "learner-1", roles: list[str] | None = None) -> dict:
    headers = {"X-User-Id": user_id}
    if roles:
        headers["X-User-Roles"] = ",".join(roles)
    return headers


def admin_headers(user_id: str = "admin-1") -> dict:
    return user_headers(user_id, roles=["admin"])


def make_course(
    course_id: str = "c1", modules: int = 2, leaves_per_module: int = 2
) -> Course:
    """A course with positional (unpinned) IDs everywhere."""
    return Course.new(
        id=course_id,
        title=f"Course {course_id}",
        modules=[
            {
                "title": f"Module {m}",
                "leaves": [
                    {"title": f"Lesson {m}.{s}"}
                    for s in range(1, leaves_per_module + 1)
                ],
            }
            for m in range(1, modules + 1)
        ],
    )


def seed_course(course: Course) -> None:
    asyncio.run(registry.course_repo.save(course))


class Services:
    """One in-memory wiring of every service, sharing a fake clock."""

    def __init__(
        self,
        *,
        concurrency: int = 4,
        write_attempts: int = 3,
        enrollments: InMemoryEnrollmentRepo | None = None,
    ) -> None:
        self.clock = FakeClock()
        self.courses = InMemoryCourseRepo()
        self.enrollments = (
            enrollments if enrollments is not None else InMemoryEnrollmentRepo()
        )
        self.cache = InMemoryCacheService()
        self.enrollment = EnrollmentService(
            self.courses,
            self.enrollments,
            self.cache,
            concurrency=concurrency,
            clock=self.clock,
        )
        self.progress = ProgressService(
            self.courses,
            self.enrollments,
            self.cache,
            write_attempts=write_attempts,
            recent_activity_limit=5,
            cache_ttl=300,
            clock=self.clock,
        )
        self.repair = RepairService(
            self.courses,
            self.enrollments,
            self.cache,
            concurrency=concurrency,
            write_attempts=write_attempts,
            clock=self.clock,
        )
        self.course = CourseService(self.courses, self.enrollment, self.repair)


@pytest.fixture
def services() -> Services:
    return Services()

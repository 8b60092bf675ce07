"""Hooks for the course-authoring side.

Saving a hierarchy indexes it, persists it with its assigned IDs and
realigns every enrolled user.  Deleting a course purges its enrollments.
"""

from __future__ import annotations

import logging

from coursetrack.models.course import Course
from coursetrack.repos.course_repo import CourseRepo
from coursetrack.services.course_indexing import index_course
from coursetrack.services.enrollment_service import (
    CourseDeletionResult,
    EnrollmentService,
)
from coursetrack.services.errors import NotFoundError
from coursetrack.services.repair_service import RepairResult, RepairService

logger = logging.getLogger(__name__)


class CourseService:
    def __init__(
        self,
        course_repo: CourseRepo,
        enrollment_service: EnrollmentService,
        repair_service: RepairService,
    ) -> None:
        self._courses = course_repo
        self._enrollment_service = enrollment_service
        self._repair_service = repair_service

    async def save_course_structure(self, course: Course) -> RepairResult:
        # Indexing validates the hierarchy, so nothing is stored if it raises.
        indexed = index_course(course)
        await self._courses.save(indexed.course)
        logger.info(
            "Saved course=%s modules=%d leaves=%d",
            course.id,
            indexed.index.total_modules,
            indexed.index.total_leaves,
        )
        return await self._repair_service.reconcile_course(indexed.index)

    async def delete_course(self, course_id: str) -> CourseDeletionResult:
        if not await self._courses.delete(course_id):
            raise NotFoundError(f"course {course_id} not found")
        logger.info("Deleted course=%s", course_id)
        return await self._enrollment_service.on_course_deleted(course_id)

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from coursetrack.api.courses import UserFailureOut
from coursetrack.api.dependencies import http_error, require_role
from coursetrack.models.principal import Principal
from coursetrack.services import registry
from coursetrack.services.errors import ProgressError
from coursetrack.services.repair_service import CourseRepairFailure, RepairResult
from coursetrack.services.task_queue import (
    COURSE_CLEANUP_QUEUE,
    COURSE_REPAIR_QUEUE,
    task_queue,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class RepairOut(BaseModel):
    course_id: str
    total_modules: int
    total_leaves: int
    users_updated: int
    users_changed: int
    users_failed: list[UserFailureOut]

    @classmethod
    def from_result(cls, result: RepairResult) -> RepairOut:
        return cls(
            course_id=result.course_id,
            total_modules=result.total_modules,
            total_leaves=result.total_leaves,
            users_updated=result.users_updated,
            users_changed=result.users_changed,
            users_failed=[UserFailureOut.from_failure(f) for f in result.users_failed],
        )


class CourseRepairFailureOut(BaseModel):
    course_id: str
    error: str
    code: str


class RepairAllOut(BaseModel):
    repaired: list[RepairOut]
    failed: list[CourseRepairFailureOut]


class TaskOut(BaseModel):
    task_id: str
    queue: str


class CleanupOut(BaseModel):
    stale_course_ids: list[str]
    enrollments_removed: int
    users_failed: list[UserFailureOut]


@router.post(
    "/courses/repair",
    response_model=RepairAllOut,
)
async def repair_all_courses(
    principal: Annotated[Principal, Depends(require_role("admin"))],
) -> RepairAllOut:
    logger.info("Repair of all courses requested by user=%s", principal.user_id)
    results = await registry.repair_service.repair_all_courses()
    return RepairAllOut(
        repaired=[
            RepairOut.from_result(r) for r in results if isinstance(r, RepairResult)
        ],
        failed=[
            CourseRepairFailureOut(course_id=r.course_id, error=r.error, code=r.code)
            for r in results
            if isinstance(r, CourseRepairFailure)
        ],
    )


@router.post(
    "/courses/{course_id}/repair",
    response_model=RepairOut | TaskOut,
)
async def repair_course(
    course_id: str,
    response: Response,
    principal: Annotated[Principal, Depends(require_role("admin"))],
    background: bool = False,
) -> RepairOut | TaskOut:
    """Realign every enrollment of a course with its current hierarchy.

    With ?background=true the repair is handed to the worker and the
    response is 202 with the task ID.
    """
    if background:
        task = await task_queue.enqueue(COURSE_REPAIR_QUEUE, {"course_id": course_id})
        logger.info(
            "Repair of course=%s queued by user=%s task=%s",
            course_id,
            principal.user_id,
            task.id,
        )
        response.status_code = status.HTTP_202_ACCEPTED
        return TaskOut(task_id=task.id, queue=task.queue)

    try:
        result = await registry.repair_service.repair_course(course_id)
    except ProgressError as e:
        raise http_error(e) from None

    logger.info("Repair of course=%s run by user=%s", course_id, principal.user_id)
    return RepairOut.from_result(result)


@router.post("/enrollments/cleanup", response_model=CleanupOut | TaskOut)
async def cleanup_enrollments(
    response: Response,
    principal: Annotated[Principal, Depends(require_role("admin"))],
    background: bool = False,
) -> CleanupOut | TaskOut:
    if background:
        task = await task_queue.enqueue(COURSE_CLEANUP_QUEUE, {})
        logger.info(
            "Stale enrollment cleanup queued by user=%s task=%s",
            principal.user_id,
            task.id,
        )
        response.status_code = status.HTTP_202_ACCEPTED
        return TaskOut(task_id=task.id, queue=task.queue)

    logger.info("Stale enrollment cleanup requested by user=%s", principal.user_id)
    result = await registry.enrollment_service.cleanup_stale_enrollments()
    return CleanupOut(
        stale_course_ids=list(result.stale_course_ids),
        enrollments_removed=result.enrollments_removed,
        users_failed=[UserFailureOut.from_failure(f) for f in result.users_failed],
    )

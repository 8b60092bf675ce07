"""Learner-facing progress endpoints.

  POST   /v1/progress/enroll/{course_id}        enroll (201, or 200 if already)
  DELETE /v1/progress/enroll/{course_id}        unenroll
  PUT    /v1/progress/{course_id}/modules/{module_id}/leaves/{leaf_id}
                                                mark a leaf completed
  GET    /v1/progress/{course_id}               one course, read-through cached
  GET    /v1/progress                           every course of the caller

The caller is always the subject: user IDs come from the identity
headers, never from the path.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from coursetrack.api.dependencies import http_error, require_user
from coursetrack.models.enrollment import ProgressEntry
from coursetrack.models.principal import Principal
from coursetrack.services import registry
from coursetrack.services.errors import ProgressError
from coursetrack.services.progress_service import ProgressView

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


class EntryOut(BaseModel):
    module_id: str
    leaf_id: str
    completed: bool
    completed_at: datetime | None = None
    last_visited_at: datetime | None = None

    @classmethod
    def from_entry(cls, entry: ProgressEntry) -> EntryOut:
        return cls(
            module_id=entry.module_id,
            leaf_id=entry.leaf_id,
            completed=entry.completed,
            completed_at=entry.completed_at,
            last_visited_at=entry.last_visited_at,
        )


class ProgressOut(BaseModel):
    course_id: str
    enrolled: bool
    total_leaves: int
    completed_leaves: int
    progress_percent: int
    enrolled_at: datetime | None = None
    last_accessed_at: datetime | None = None
    entries: list[EntryOut]
    recent_activity: list[EntryOut]

    @classmethod
    def from_view(cls, view: ProgressView) -> ProgressOut:
        return cls(
            course_id=view.course_id,
            enrolled=view.enrolled,
            total_leaves=view.total_leaves,
            completed_leaves=view.completed_leaves,
            progress_percent=view.progress_percent,
            enrolled_at=view.enrolled_at,
            last_accessed_at=view.last_accessed_at,
            entries=[EntryOut.from_entry(e) for e in view.entries],
            recent_activity=[EntryOut.from_entry(e) for e in view.recent_activity],
        )


class EnrollmentOut(BaseModel):
    user_id: str
    course_id: str
    already_enrolled: bool
    enrolled_at: datetime
    total_leaves: int
    completed_leaves: int
    progress_percent: int


class CompletionOut(BaseModel):
    course_id: str
    module_id: str
    leaf_id: str
    total_leaves: int
    completed_leaves: int
    progress_percent: int
    newly_completed: bool


@router.post(
    "/enroll/{course_id}",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll(
    course_id: str,
    response: Response,
    principal: Annotated[Principal, Depends(require_user)],
) -> EnrollmentOut:
    try:
        result = await registry.enrollment_service.enroll(principal.user_id, course_id)
    except ProgressError as e:
        raise http_error(e) from None

    if result.already_enrolled:
        response.status_code = status.HTTP_200_OK

    enrollment = result.enrollment
    return EnrollmentOut(
        user_id=enrollment.user_id,
        course_id=enrollment.course_id,
        already_enrolled=result.already_enrolled,
        enrolled_at=enrollment.enrolled_at,
        total_leaves=enrollment.total_leaves,
        completed_leaves=enrollment.completed_leaves,
        progress_percent=enrollment.progress_percent,
    )


@router.delete("/enroll/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unenroll(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> Response:
    removed = await registry.enrollment_service.unenroll(principal.user_id, course_id)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "not_enrolled", "message": "not enrolled in this course"},
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{course_id}/modules/{module_id}/leaves/{leaf_id}",
    response_model=CompletionOut,
)
async def complete_leaf(
    course_id: str,
    module_id: str,
    leaf_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> CompletionOut:
    try:
        result = await registry.progress_service.mark_leaf_complete(
            principal.user_id, course_id, module_id, leaf_id
        )
    except ProgressError as e:
        raise http_error(e) from None

    return CompletionOut(
        course_id=course_id,
        module_id=module_id,
        leaf_id=leaf_id,
        total_leaves=result.total_leaves,
        completed_leaves=result.completed_leaves,
        progress_percent=result.progress_percent,
        newly_completed=result.newly_completed,
    )


@router.get("", response_model=list[ProgressOut])
async def list_progress(
    principal: Annotated[Principal, Depends(require_user)],
) -> list[ProgressOut]:
    views = await registry.progress_service.list_user_progress(principal.user_id)
    return [ProgressOut.from_view(v) for v in views]


@router.get("/{course_id}", response_model=ProgressOut)
async def get_progress(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> ProgressOut:
    view = await registry.progress_service.get_progress(principal.user_id, course_id)
    return ProgressOut.from_view(view)

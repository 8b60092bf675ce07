"""Course hierarchy endpoints used by the authoring side.

Writing a hierarchy re-indexes it and realigns every enrolled learner
before the response is sent; deleting a course purges its enrollments.
Both require the admin role.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from coursetrack.api.dependencies import http_error, require_role, require_user
from coursetrack.models.course import Course
from coursetrack.models.principal import Principal
from coursetrack.services import registry
from coursetrack.services.batch import UserFailure
from coursetrack.services.errors import ProgressError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class LeafIn(BaseModel):
    title: str = Field(min_length=1)
    id: str | None = None


class ModuleIn(BaseModel):
    title: str = Field(min_length=1)
    id: str | None = None
    leaves: list[LeafIn] = []


class CourseIn(BaseModel):
    """Full replacement of a course hierarchy.

    Nodes without an `id` get a positional one ({course}_module_{m},
    {course}_module_{m}_sub_{s}) that is stored and returned by GET.
    Sending those IDs back keeps each node's identity, and with it the
    learners' progress, across reorderings.  When inserting new nodes in
    front of them, either keep the returned IDs and give the new nodes
    explicit ones, or drop the generated IDs to renumber everything.
    Colliding IDs are rejected with 422.
    """

    title: str = Field(min_length=1)
    modules: list[ModuleIn] = []


class LeafOut(BaseModel):
    id: str | None
    position: int | None
    title: str


class ModuleOut(BaseModel):
    id: str | None
    position: int | None
    title: str
    leaves: list[LeafOut]


class CourseOut(BaseModel):
    id: str
    title: str
    modules: list[ModuleOut]

    @classmethod
    def from_course(cls, course: Course) -> CourseOut:
        return cls(
            id=course.id,
            title=course.title,
            modules=[
                ModuleOut(
                    id=m.id,
                    position=m.position,
                    title=m.title,
                    leaves=[
                        LeafOut(id=leaf.id, position=leaf.position, title=leaf.title)
                        for leaf in m.leaves
                    ],
                )
                for m in course.modules
            ],
        )


class UserFailureOut(BaseModel):
    user_id: str
    error: str
    code: str

    @classmethod
    def from_failure(cls, failure: UserFailure) -> UserFailureOut:
        return cls(user_id=failure.user_id, error=failure.error, code=failure.code)


class CourseSavedOut(BaseModel):
    course: CourseOut
    total_modules: int
    total_leaves: int
    users_updated: int
    users_changed: int
    users_failed: list[UserFailureOut]


class CourseDeletedOut(BaseModel):
    course_id: str
    users_updated: int
    users_failed: list[UserFailureOut]


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(
    course_id: str,
    _principal: Annotated[Principal, Depends(require_user)],
) -> CourseOut:
    course = await registry.course_repo.get(course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="course not found")
    return CourseOut.from_course(course)


@router.put("/{course_id}", response_model=CourseSavedOut)
async def put_course(
    course_id: str,
    body: CourseIn,
    principal: Annotated[Principal, Depends(require_role("admin"))],
) -> CourseSavedOut:
    course = Course.new(
        id=course_id,
        title=body.title,
        modules=[m.model_dump() for m in body.modules],
    )
    try:
        result = await registry.course_service.save_course_structure(course)
    except ProgressError as e:
        logger.warning("Course save rejected course=%s: %s", course_id, e.message)
        raise http_error(e) from None

    logger.info(
        "Course hierarchy saved by user=%s course=%s", principal.user_id, course_id
    )
    stored = await registry.course_repo.get(course_id)
    return CourseSavedOut(
        course=CourseOut.from_course(stored if stored is not None else course),
        total_modules=result.total_modules,
        total_leaves=result.total_leaves,
        users_updated=result.users_updated,
        users_changed=result.users_changed,
        users_failed=[UserFailureOut.from_failure(f) for f in result.users_failed],
    )


@router.delete("/{course_id}", response_model=CourseDeletedOut)
async def delete_course(
    course_id: str,
    principal: Annotated[Principal, Depends(require_role("admin"))],
) -> CourseDeletedOut:
    try:
        result = await registry.course_service.delete_course(course_id)
    except ProgressError as e:
        raise http_error(e) from None

    logger.info("Course deleted by user=%s course=%s", principal.user_id, course_id)
    return CourseDeletedOut(
        course_id=result.course_id,
        users_updated=result.users_updated,
        users_failed=[UserFailureOut.from_failure(f) for f in result.users_failed],
    )

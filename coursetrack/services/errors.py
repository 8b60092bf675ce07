"""Errors raised by the progress core.

Only the errors callers must react to are raised.  Re-enrollment and
completion of a leaf missing from the current index are absorbed into
result states, and per-user batch failures are returned as data.
"""

from __future__ import annotations


class ProgressError(Exception):
    """Base error; `code` is a stable machine-readable identifier."""

    code = "progress_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(ProgressError):
    code = "not_found"


class NotEnrolledError(ProgressError):
    code = "not_enrolled"

    def __init__(self, user_id: str, course_id: str) -> None:
        self.user_id = user_id
        self.course_id = course_id
        super().__init__(f"user {user_id} is not enrolled in course {course_id}")


class PersistenceConflictError(ProgressError):
    """A version-checked enrollment write lost a race with another writer."""

    code = "persistence_conflict"

    def __init__(self, user_id: str, course_id: str) -> None:
        self.user_id = user_id
        self.course_id = course_id
        super().__init__(
            f"enrollment {user_id}/{course_id} was modified concurrently"
        )


class InvalidHierarchyError(ProgressError, ValueError):
    """The course hierarchy cannot be indexed (e.g. colliding IDs)."""

    code = "invalid_hierarchy"

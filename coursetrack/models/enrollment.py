from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class ProgressEntry:
    module_id: str
    leaf_id: str
    completed: bool = False
    completed_at: datetime | None = None
    last_visited_at: datetime | None = None
    archived: bool = False
    archived_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.module_id, self.leaf_id)

    @property
    def is_active(self) -> bool:
        return not self.archived


@dataclass(frozen=True, slots=True)
class ProgressAggregates:
    total_leaves: int = 0
    completed_leaves: int = 0
    progress_percent: int = 0


@dataclass(frozen=True, slots=True)
class Enrollment:
    """Per-user, per-course progress record.

    `version` is the optimistic-concurrency counter: repositories only
    accept a save whose version matches the stored one, then bump it.
    """

    user_id: str
    course_id: str
    enrolled_at: datetime
    last_accessed_at: datetime
    total_leaves: int = 0
    completed_leaves: int = 0
    progress_percent: int = 0
    entries: tuple[ProgressEntry, ...] = ()
    version: int = 0

    @staticmethod
    def new(
        *,
        user_id: str,
        course_id: str,
        now: datetime,
        total_leaves: int,
        entries: tuple[ProgressEntry, ...],
    ) -> Enrollment:
        return Enrollment(
            user_id=user_id,
            course_id=course_id,
            enrolled_at=now,
            last_accessed_at=now,
            total_leaves=total_leaves,
            entries=entries,
        )

    @property
    def active_entries(self) -> list[ProgressEntry]:
        return [e for e in self.entries if e.is_active]

    @property
    def aggregates(self) -> ProgressAggregates:
        return ProgressAggregates(
            total_leaves=self.total_leaves,
            completed_leaves=self.completed_leaves,
            progress_percent=self.progress_percent,
        )

"""Run one independent unit of work per user through a bounded worker pool.

Used by course-wide reconciliation and by the course-deletion purge.
Users are independent, so:

  - a failure is recorded against that user and the batch moves on;
  - ordering across users is unspecified;
  - cancelling the batch stops dispatching new users, while the update
    already in flight for a user is shielded and allowed to finish.
    Nothing already applied is undone.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import partial

logger = logging.getLogger(__name__)

# True: record changed; False: already aligned; None: nothing to do for this user
UserWork = Callable[[str], Awaitable[bool | None]]


@dataclass(frozen=True, slots=True)
class UserFailure:
    user_id: str
    error: str
    code: str


@dataclass(slots=True)
class BatchOutcome:
    changed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[UserFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.changed) + len(self.unchanged)


def _log_orphaned(label: str, user_id: str, task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "%s failed for user=%s after the batch was cancelled",
            label,
            user_id,
            exc_info=exc,
        )


async def run_per_user(
    user_ids: list[str],
    work: UserWork,
    *,
    concurrency: int,
    label: str,
) -> BatchOutcome:
    outcome = BatchOutcome()
    pending: asyncio.Queue[str] = asyncio.Queue()
    for user_id in user_ids:
        pending.put_nowait(user_id)

    async def _worker() -> None:
        while True:
            try:
                user_id = pending.get_nowait()
            except asyncio.QueueEmpty:
                return
            task = asyncio.ensure_future(work(user_id))
            try:
                result = await asyncio.shield(task)
            except asyncio.CancelledError:
                # The update keeps running after the batch is gone; its
                # outcome still has to reach the log.
                task.add_done_callback(partial(_log_orphaned, label, user_id))
                raise
            except Exception as exc:
                logger.exception("%s failed for user=%s", label, user_id)
                outcome.failed.append(
                    UserFailure(
                        user_id=user_id,
                        error=str(exc),
                        code=getattr(exc, "code", type(exc).__name__),
                    )
                )
                continue

            if result is None:
                outcome.skipped.append(user_id)
            elif result:
                outcome.changed.append(user_id)
            else:
                outcome.unchanged.append(user_id)

    workers = max(1, min(concurrency, len(user_ids)))
    await asyncio.gather(*(_worker() for _ in range(workers)))
    return outcome

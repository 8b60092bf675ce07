"""Background worker process.

RUN:  python -m coursetrack.worker

Runs the course-wide jobs the admin API queues with ?background=true:

  course_repair   {"course_id": ...}  re-index + reconcile every enrollment
  course_cleanup  {}                  drop enrollments of deleted courses

Same image as the API, different command:
  api:    uvicorn coursetrack.main:app --host 0.0.0.0 --port 8000
  worker: python -m coursetrack.worker

Both jobs are idempotent, so a task lost in a crash is fixed by queueing
it again.  Per-user failures inside a job are logged and reported in the
job's result; only a failure of the job as a whole is logged as failed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from coursetrack.core.config import SETTINGS
from coursetrack.core.logging import setup_logging
from coursetrack.core.metrics import QUEUE_DEPTH
from coursetrack.services import registry
from coursetrack.services.task_queue import (
    COURSE_CLEANUP_QUEUE,
    COURSE_REPAIR_QUEUE,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("coursetrack.worker")


HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(COURSE_REPAIR_QUEUE)
async def handle_course_repair(payload: dict) -> None:
    course_id = payload["course_id"]
    result = await registry.repair_service.repair_course(course_id)
    logger.info(
        "Repaired course=%s users=%d changed=%d failed=%d",
        course_id,
        result.users_updated,
        result.users_changed,
        len(result.users_failed),
        extra={"course_id": course_id},
    )


@register_handler(COURSE_CLEANUP_QUEUE)
async def handle_course_cleanup(payload: dict) -> None:
    result = await registry.enrollment_service.cleanup_stale_enrollments()
    logger.info(
        "Cleanup removed=%d stale_courses=%d failed=%d",
        result.enrollments_removed,
        len(result.stale_course_ids),
        len(result.users_failed),
    )


async def process_one(queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and run at most one task; returns True if one was run."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    QUEUE_DEPTH.labels(queue_name=queue_name).set(
        await task_queue.queue_length(queue_name)
    )
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info(
            "Task %s on [%s] completed",
            task.id,
            queue_name,
            extra={"task_id": task.id},
        )
    except Exception:
        # Dropped after logging; the jobs are safe to queue again.
        logger.exception(
            "Task %s on [%s] failed", task.id, queue_name, extra={"task_id": task.id}
        )
    return True


async def run_worker() -> None:
    """Poll all registered queues round-robin and dispatch to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        for queue_name in queues:
            await process_one(queue_name)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())

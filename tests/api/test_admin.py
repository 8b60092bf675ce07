"""Tests for the admin repair and cleanup endpoints."""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from coursetrack.services import registry
from coursetrack.services.task_queue import (
    COURSE_CLEANUP_QUEUE,
    COURSE_REPAIR_QUEUE,
    task_queue,
)
from tests.conftest import admin_headers, make_course, seed_course, user_headers


def _enroll_and_shrink(client: TestClient) -> None:
    """Enroll a learner, then edit the stored hierarchy behind their back."""
    seed_course(make_course("c1", modules=2))
    client.post("/v1/progress/enroll/c1", headers=user_headers())
    seed_course(make_course("c1", modules=1))


# ---- 403 ----


def test_admin_endpoints_require_admin(client: TestClient) -> None:
    headers = user_headers()
    assert client.post("/admin/courses/repair", headers=headers).status_code == 403
    assert client.post("/admin/courses/c1/repair", headers=headers).status_code == 403
    resp = client.post("/admin/enrollments/cleanup", headers=headers)
    assert resp.status_code == 403


# ---- repair ----


def test_repair_course_runs_inline(client: TestClient) -> None:
    _enroll_and_shrink(client)

    resp = client.post("/admin/courses/c1/repair", headers=admin_headers())
    assert resp.status_code == 200
    body = resp.json()
    assert body["course_id"] == "c1"
    assert body["total_leaves"] == 2
    assert body["users_updated"] == 1
    assert body["users_changed"] == 1
    assert body["users_failed"] == []

    progress = client.get("/v1/progress/c1", headers=user_headers()).json()
    assert progress["total_leaves"] == 2


def test_repair_unknown_course_is_404(client: TestClient) -> None:
    resp = client.post("/admin/courses/nope/repair", headers=admin_headers())
    assert resp.status_code == 404


def test_repair_course_in_background_is_queued(client: TestClient) -> None:
    _enroll_and_shrink(client)

    resp = client.post(
        "/admin/courses/c1/repair?background=true", headers=admin_headers()
    )
    assert resp.status_code == 202
    assert resp.json()["queue"] == COURSE_REPAIR_QUEUE

    task = asyncio.run(task_queue.dequeue(COURSE_REPAIR_QUEUE))
    assert task is not None
    assert task.id == resp.json()["task_id"]
    assert task.payload == {"course_id": "c1"}
    # Nothing ran yet.
    assert asyncio.run(registry.enrollment_repo.get("learner-1", "c1")).total_leaves == 4


def test_repair_all_courses(client: TestClient) -> None:
    _enroll_and_shrink(client)
    seed_course(make_course("c2"))

    resp = client.post("/admin/courses/repair", headers=admin_headers())
    assert resp.status_code == 200
    body = resp.json()
    assert sorted(r["course_id"] for r in body["repaired"]) == ["c1", "c2"]
    assert body["failed"] == []


# ---- cleanup ----


def test_cleanup_removes_enrollments_of_missing_courses(client: TestClient) -> None:
    seed_course(make_course("c1"))
    seed_course(make_course("c2"))
    client.post("/v1/progress/enroll/c1", headers=user_headers())
    client.post("/v1/progress/enroll/c2", headers=user_headers())
    # Deleted without going through the API, so nobody was purged.
    asyncio.run(registry.course_repo.delete("c2"))

    resp = client.post("/admin/enrollments/cleanup", headers=admin_headers())
    assert resp.status_code == 200
    assert resp.json() == {
        "stale_course_ids": ["c2"],
        "enrollments_removed": 1,
        "users_failed": [],
    }
    assert asyncio.run(registry.enrollment_repo.get("learner-1", "c2")) is None
    assert asyncio.run(registry.enrollment_repo.get("learner-1", "c1")) is not None


def test_cleanup_in_background_is_queued(client: TestClient) -> None:
    resp = client.post(
        "/admin/enrollments/cleanup?background=true", headers=admin_headers()
    )
    assert resp.status_code == 202
    assert asyncio.run(task_queue.queue_length(COURSE_CLEANUP_QUEUE)) == 1

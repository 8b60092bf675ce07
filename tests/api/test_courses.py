"""Tests for course hierarchy endpoints.

Writes are admin-only; every write realigns the enrollments of the
course before the response is returned.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import admin_headers, make_course, seed_course, user_headers

TWO_MODULES = {
    "title": "Intro to Python",
    "modules": [
        {"title": "Basics", "leaves": [{"title": "Types"}, {"title": "Loops"}]},
        {"title": "Functions", "leaves": [{"title": "Args"}, {"title": "Scope"}]},
    ],
}

ONE_MODULE = {
    "title": "Intro to Python",
    "modules": [
        {"title": "Basics", "leaves": [{"title": "Types"}, {"title": "Loops"}]},
    ],
}


# ---- 401 / 403 ----


def test_course_write_requires_admin(client: TestClient) -> None:
    assert client.put("/v1/courses/py", json=TWO_MODULES).status_code == 401
    resp = client.put("/v1/courses/py", json=TWO_MODULES, headers=user_headers())
    assert resp.status_code == 403
    assert client.delete("/v1/courses/py", headers=user_headers()).status_code == 403


# ---- PUT ----


def test_put_course_assigns_positional_ids(client: TestClient) -> None:
    resp = client.put("/v1/courses/py", json=TWO_MODULES, headers=admin_headers())
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_modules"] == 2
    assert body["total_leaves"] == 4
    assert body["users_updated"] == 0

    modules = body["course"]["modules"]
    assert [m["id"] for m in modules] == ["py_module_1", "py_module_2"]
    assert [leaf["id"] for leaf in modules[1]["leaves"]] == [
        "py_module_2_sub_1",
        "py_module_2_sub_2",
    ]
    assert modules[1]["leaves"][1]["position"] == 2


def test_put_course_keeps_pinned_ids(client: TestClient) -> None:
    payload = {
        "title": "Pinned",
        "modules": [
            {"title": "A", "id": "intro", "leaves": [{"title": "x", "id": "hello"}]}
        ],
    }
    resp = client.put("/v1/courses/pin", json=payload, headers=admin_headers())
    module = resp.json()["course"]["modules"][0]
    assert module["id"] == "intro"
    assert module["leaves"][0]["id"] == "hello"


def test_put_course_reconciles_enrolled_learners(client: TestClient) -> None:
    admin = admin_headers()
    learner = user_headers()
    client.put("/v1/courses/py", json=TWO_MODULES, headers=admin)
    client.post("/v1/progress/enroll/py", headers=learner)
    client.put(
        "/v1/progress/py/modules/py_module_1/leaves/py_module_1_sub_1",
        headers=learner,
    )

    resp = client.put("/v1/courses/py", json=ONE_MODULE, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["users_updated"] == 1
    assert resp.json()["users_changed"] == 1

    progress = client.get("/v1/progress/py", headers=learner).json()
    assert progress["total_leaves"] == 2
    assert progress["completed_leaves"] == 1
    assert progress["progress_percent"] == 50


def test_put_course_rejects_colliding_ids(client: TestClient) -> None:
    payload = {
        "title": "Broken",
        "modules": [
            {"title": "A", "id": "same"},
            {"title": "B", "id": "same"},
        ],
    }
    resp = client.put("/v1/courses/bad", json=payload, headers=admin_headers())
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "invalid_hierarchy"
    assert client.get("/v1/courses/bad", headers=user_headers()).status_code == 404


def test_put_course_insert_in_front_of_returned_ids(client: TestClient) -> None:
    admin = admin_headers()
    saved = client.put("/v1/courses/py", json=ONE_MODULE, headers=admin).json()
    returned = saved["course"]["modules"]

    # New module without an ID ahead of the one GET handed back.
    edited = {
        "title": "Intro to Python",
        "modules": [{"title": "Setup", "leaves": [{"title": "Install"}]}, *returned],
    }
    rejected = client.put("/v1/courses/py", json=edited, headers=admin)
    assert rejected.status_code == 422
    message = rejected.json()["detail"]["message"]
    assert "drop it to have the node renumbered" in message

    edited["modules"][0]["id"] = "setup"
    edited["modules"][0]["leaves"][0]["id"] = "install"
    accepted = client.put("/v1/courses/py", json=edited, headers=admin)
    assert accepted.status_code == 200
    ids = [m["id"] for m in accepted.json()["course"]["modules"]]
    assert ids == ["setup", "py_module_1"]


def test_put_course_rejects_blank_title(client: TestClient) -> None:
    resp = client.put(
        "/v1/courses/py", json={"title": "", "modules": []}, headers=admin_headers()
    )
    assert resp.status_code == 422


# ---- GET ----


def test_get_course(client: TestClient) -> None:
    seed_course(make_course("c1"))
    resp = client.get("/v1/courses/c1", headers=user_headers())
    assert resp.status_code == 200
    assert resp.json()["id"] == "c1"
    assert len(resp.json()["modules"]) == 2


def test_get_unknown_course_is_404(client: TestClient) -> None:
    assert client.get("/v1/courses/nope", headers=user_headers()).status_code == 404


# ---- DELETE ----


def test_delete_course_purges_enrollments(client: TestClient) -> None:
    seed_course(make_course("c1"))
    for user_id in ("learner-1", "learner-2"):
        client.post("/v1/progress/enroll/c1", headers=user_headers(user_id))

    resp = client.delete("/v1/courses/c1", headers=admin_headers())
    assert resp.status_code == 200
    assert resp.json() == {"course_id": "c1", "users_updated": 2, "users_failed": []}

    assert client.get("/v1/courses/c1", headers=user_headers()).status_code == 404
    assert client.get("/v1/progress", headers=user_headers("learner-1")).json() == []


def test_delete_unknown_course_is_404(client: TestClient) -> None:
    resp = client.delete("/v1/courses/nope", headers=admin_headers())
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "not_found"

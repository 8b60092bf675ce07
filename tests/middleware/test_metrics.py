"""Tests for the Prometheus metrics middleware.

The default registry is global and counters never reset, so every test
asserts on the delta around the action.
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import make_course, seed_course, user_headers


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_increments(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/health")
    assert _get_sample("http_requests_total", labels) - before >= 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _get_sample("http_request_duration_seconds_count", labels) - before >= 1


def test_endpoint_label_uses_route_template(client: TestClient) -> None:
    seed_course(make_course("c1"))
    seed_course(make_course("c2"))
    labels = {
        "method": "GET",
        "endpoint": "/v1/progress/{course_id}",
        "status_code": "200",
    }
    before = _get_sample("http_requests_total", labels)

    client.get("/v1/progress/c1", headers=user_headers())
    client.get("/v1/progress/c2", headers=user_headers())

    assert _get_sample("http_requests_total", labels) - before == 2
    raw = {"method": "GET", "endpoint": "/v1/progress/c1", "status_code": "200"}
    assert _get_sample("http_requests_total", raw) == 0


def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "reconcile_users_total" in resp.text


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/metrics")
    client.get("/metrics")
    assert _get_sample("http_requests_total", labels) == before

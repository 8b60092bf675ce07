from __future__ import annotations

import asyncio

import pytest

from coursetrack.services.batch import run_per_user
from coursetrack.services.errors import NotEnrolledError


def test_outcomes_sorted_into_buckets() -> None:
    async def work(user_id: str) -> bool | None:
        if user_id == "boom":
            raise NotEnrolledError(user_id, "c1")
        if user_id == "gone":
            return None
        return user_id.startswith("changed")

    outcome = asyncio.run(
        run_per_user(
            ["changed-1", "same-1", "boom", "gone", "changed-2"],
            work,
            concurrency=2,
            label="test",
        )
    )

    assert sorted(outcome.changed) == ["changed-1", "changed-2"]
    assert outcome.unchanged == ["same-1"]
    assert outcome.skipped == ["gone"]
    assert outcome.succeeded == 3
    assert len(outcome.failed) == 1
    assert outcome.failed[0].user_id == "boom"
    assert outcome.failed[0].code == "not_enrolled"


def test_empty_batch() -> None:
    async def work(user_id: str) -> bool:
        raise AssertionError("no users, no work")

    outcome = asyncio.run(run_per_user([], work, concurrency=4, label="test"))
    assert outcome.succeeded == 0
    assert outcome.failed == []


def test_concurrency_is_bounded() -> None:
    running = 0
    peak = 0

    async def work(user_id: str) -> bool:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.001)
        running -= 1
        return True

    outcome = asyncio.run(
        run_per_user([f"u{i}" for i in range(20)], work, concurrency=3, label="test")
    )
    assert len(outcome.changed) == 20
    assert peak == 3


def test_cancel_stops_dispatch_and_lets_in_flight_user_finish() -> None:
    started: list[str] = []
    finished: list[str] = []

    async def scenario() -> None:
        release = asyncio.Event()

        async def work(user_id: str) -> bool:
            started.append(user_id)
            await release.wait()
            finished.append(user_id)
            return True

        batch = asyncio.create_task(
            run_per_user(["u1", "u2", "u3"], work, concurrency=1, label="test")
        )
        while not started:
            await asyncio.sleep(0)

        batch.cancel()
        with pytest.raises(asyncio.CancelledError):
            await batch

        release.set()
        for _ in range(5):
            await asyncio.sleep(0)

    asyncio.run(scenario())

    assert started == ["u1"]
    assert finished == ["u1"]


def test_failure_after_cancel_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    async def scenario() -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def work(user_id: str) -> bool:
            started.set()
            await release.wait()
            raise ConnectionError("connection reset")

        batch = asyncio.create_task(
            run_per_user(["u1", "u2"], work, concurrency=1, label="test")
        )
        await started.wait()

        batch.cancel()
        with pytest.raises(asyncio.CancelledError):
            await batch

        release.set()
        for _ in range(5):
            await asyncio.sleep(0)

    with caplog.at_level("ERROR", logger="coursetrack.services.batch"):
        asyncio.run(scenario())

    failures = [
        r
        for r in caplog.records
        if "after the batch was cancelled" in r.getMessage()
    ]
    assert len(failures) == 1
    assert "user=u1" in failures[0].getMessage()
    assert failures[0].exc_info[0] is ConnectionError

"""Tests for the in-process job registry and progress channels."""

import asyncio

import pytest

from app.core.job_registry import (
    InMemoryJobStore,
    JobRegistry,
    dfd_job_id,
    matrix_job_id,
)
from app.core.schemas_matrix import ProgressEvent


def _event(step: str, progress: int, message: str = "step") -> ProgressEvent:
    return ProgressEvent(step=step, message=message, progress=progress)


async def _collect(subscription) -> list[ProgressEvent]:
    return [event async for event in subscription]


def test_job_names():
    assert matrix_job_id("v1") == "matrix-v1"
    assert dfd_job_id("v1") == "dfd-v1"


@pytest.mark.asyncio
async def test_successful_job_records_result_and_done_event():
    registry = JobRegistry()

    async def work(emit):
        emit(_event("extracting", 5))
        emit(_event("persisting", 88))
        return {"row_count": 3}

    job = registry.start("matrix-a", work)
    subscription = registry.subscribe("matrix-a")
    events = await asyncio.wait_for(_collect(subscription), timeout=2)

    assert [e.step for e in events] == ["extracting", "persisting", "done"]
    assert events[-1].progress == 100
    assert job.status == "done"
    assert job.result == {"row_count": 3}
    assert job.finished_at is not None


@pytest.mark.asyncio
async def test_done_event_from_work_is_kept_and_not_duplicated():
    registry = JobRegistry()

    async def work(emit):
        emit(_event("done", 100, "Data matrix generated with 2 rows"))
        return {"row_count": 2}

    registry.start("matrix-b", work)
    events = await asyncio.wait_for(_collect(registry.subscribe("matrix-b")), timeout=2)

    assert len(events) == 1
    assert events[0].message == "Data matrix generated with 2 rows"


@pytest.mark.asyncio
async def test_status_is_final_when_done_event_arrives():
    registry = JobRegistry()

    async def work(emit):
        emit(_event("done", 100))
        await asyncio.sleep(0)
        return "ok"

    job = registry.start("matrix-c", work)
    async for event in registry.subscribe("matrix-c"):
        if event.step == "done":
            assert job.status == "done"
            assert job.result == "ok"


@pytest.mark.asyncio
async def test_failed_job_emits_terminal_error_event():
    registry = JobRegistry()

    async def work(emit):
        emit(_event("extracting", 5))
        raise RuntimeError("provider exploded")

    job = registry.start("matrix-d", work)
    events = await asyncio.wait_for(_collect(registry.subscribe("matrix-d")), timeout=2)

    assert events[-1].step == "error"
    assert events[-1].progress == -1
    assert events[-1].message == "provider exploded"
    assert job.status == "error"
    assert job.error == "provider exploded"


@pytest.mark.asyncio
async def test_duplicate_start_while_running_returns_same_job():
    registry = JobRegistry()
    release = asyncio.Event()
    runs = 0

    async def work(emit):
        nonlocal runs
        runs += 1
        await release.wait()
        return runs

    first = registry.start("matrix-e", work)
    second = registry.start("matrix-e", work)
    assert second is first
    assert registry.is_running("matrix-e")

    release.set()
    await asyncio.wait_for(_collect(registry.subscribe("matrix-e")), timeout=2)
    assert runs == 1
    assert not registry.is_running("matrix-e")


@pytest.mark.asyncio
async def test_restart_after_completion_creates_new_job():
    registry = JobRegistry()

    async def work(emit):
        return "ok"

    first = registry.start("matrix-f", work)
    await asyncio.wait_for(_collect(registry.subscribe("matrix-f")), timeout=2)

    second = registry.start("matrix-f", work)
    assert second is not first
    assert registry.get_job("matrix-f") is second


@pytest.mark.asyncio
async def test_late_subscriber_replays_full_history_in_order():
    registry = JobRegistry()
    gate = asyncio.Event()

    async def work(emit):
        emit(_event("extracting", 5))
        emit(_event("extracting", 30))
        await gate.wait()
        emit(_event("building_graph", 35))
        return None

    registry.start("matrix-g", work)
    early = registry.subscribe("matrix-g")
    # Let the job run up to the gate
    await asyncio.sleep(0.01)
    late = registry.subscribe("matrix-g")
    gate.set()

    early_events = await asyncio.wait_for(_collect(early), timeout=2)
    late_events = await asyncio.wait_for(_collect(late), timeout=2)

    assert early_events == late_events
    assert [e.progress for e in late_events] == [5, 30, 35, 100]


@pytest.mark.asyncio
async def test_subscribe_after_finish_replays_terminal_event():
    registry = JobRegistry()

    async def work(emit):
        emit(_event("extracting", 50))
        return None

    registry.start("matrix-h", work)
    await asyncio.wait_for(_collect(registry.subscribe("matrix-h")), timeout=2)

    events = await asyncio.wait_for(_collect(registry.subscribe("matrix-h")), timeout=2)
    assert [e.step for e in events] == ["extracting", "done"]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    registry = JobRegistry()
    gate = asyncio.Event()

    async def work(emit):
        await gate.wait()
        emit(_event("extracting", 5))
        return None

    job = registry.start("matrix-i", work)
    with registry.subscribe("matrix-i") as subscription:
        assert subscription in job.subscribers
    assert subscription not in job.subscribers

    gate.set()
    await asyncio.wait_for(_collect(registry.subscribe("matrix-i")), timeout=2)
    assert subscription._queue.empty()


@pytest.mark.asyncio
async def test_subscribe_unknown_job_returns_none():
    registry = JobRegistry()
    assert registry.subscribe("missing") is None
    assert registry.get_job("missing") is None


@pytest.mark.asyncio
async def test_jobs_live_in_the_given_store():
    store = InMemoryJobStore()
    registry = JobRegistry(store=store)

    async def work(emit):
        return None

    job = registry.start("dfd-a", work)
    assert store.get("dfd-a") is job
    assert registry.list_jobs() == [job]

    await asyncio.wait_for(_collect(registry.subscribe("dfd-a")), timeout=2)
    snapshot = job.to_dict()
    assert snapshot["status"] == "done"
    assert snapshot["progress"][-1]["step"] == "done"

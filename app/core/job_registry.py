"""In-process job registry with per-subscriber progress channels.

Tracks asynchronous pipeline runs by name (e.g. `matrix-<vertical_id>`),
keeps each run's ordered progress log, and fans progress out to any number
of subscribers. Each subscriber owns an `asyncio.Queue`; a new subscriber's
queue is pre-filled with the full history before it is attached, so late
subscribers never miss earlier events.

Guarantees:
  - at most one running job per name; `start` on a running name is a no-op
  - status moves running -> done | error exactly once
  - a failed job always emits a terminal `error` event (progress -1)

Jobs live in a `JobStore`. The default `InMemoryJobStore` loses history on
process restart; a durable store can be swapped in without touching callers.
There is no cancellation: a job runs to completion even if every subscriber
disconnects.
"""

import asyncio
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Literal, Protocol

from app.core.logging import get_logger
from app.core.schemas_matrix import ProgressEvent

logger = get_logger(__name__)

JobStatus = Literal["running", "done", "error"]
EmitFn = Callable[[ProgressEvent], None]
WorkFn = Callable[[EmitFn], Awaitable[Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class Job:
    """One asynchronous pipeline run."""

    id: str
    status: JobStatus = "running"
    progress: list[ProgressEvent] = field(default_factory=list)
    result: Any = None
    error: str | None = None
    created_at: datetime = field(default_factory=_utc_now)
    finished_at: datetime | None = None
    subscribers: set["JobSubscription"] = field(default_factory=set, repr=False)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Snapshot for the status endpoint."""
        with self.lock:
            progress = [event.model_dump(exclude_none=True) for event in self.progress]
        return {
            "id": self.id,
            "status": self.status,
            "progress": progress,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class JobSubscription:
    """A consumer channel on one job's progress.

    Iterate with `async for`; iteration ends after the first `done`/`error`
    event. Call `unsubscribe()` (or use as a context manager) to detach early.
    """

    def __init__(self, job: Job, loop: asyncio.AbstractEventLoop):
        self.job_id = job.id
        self._job = job
        self._loop = loop
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        self._finished = False

    def _deliver(self, event: ProgressEvent) -> None:
        """Enqueue an event; safe to call from any thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._queue.put_nowait(event)
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            logger.debug(
                "Dropping progress event for subscriber on closed loop",
                extra={"job_id": self.job_id},
            )

    async def get(self) -> ProgressEvent:
        return await self._queue.get()

    def unsubscribe(self) -> None:
        with self._job.lock:
            self._job.subscribers.discard(self)

    def __aiter__(self) -> "JobSubscription":
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event.is_terminal:
            self._finished = True
            self.unsubscribe()
        return event

    def __enter__(self) -> "JobSubscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class JobStore(Protocol):
    """Storage for jobs; swap for a durable backing if history must survive restarts."""

    def get(self, job_id: str) -> Job | None: ...

    def put(self, job: Job) -> None: ...

    def list(self) -> list[Job]: ...


class InMemoryJobStore:
    """Process-local job store. Jobs are never evicted."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def put(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def list(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())


class JobRegistry:
    """Starts jobs, records their progress and hands out subscriptions."""

    def __init__(self, store: JobStore | None = None):
        self._store: JobStore = store or InMemoryJobStore()
        self._start_lock = threading.Lock()
        # Strong refs so running tasks are not garbage collected
        self._tasks: set[asyncio.Task] = set()

    def get_job(self, job_id: str) -> Job | None:
        return self._store.get(job_id)

    def list_jobs(self) -> list[Job]:
        return self._store.list()

    def is_running(self, job_id: str) -> bool:
        job = self._store.get(job_id)
        return job is not None and job.status == "running"

    def start(self, job_id: str, work_fn: WorkFn) -> Job:
        """
        Start `work_fn(emit)` as a job named `job_id`.

        Must be called from a running event loop.

        Args:
            job_id: Deterministic job name
            work_fn: Coroutine function receiving the emit callback

        Returns:
            The new job, or the existing one unchanged if it is still running
        """
        with self._start_lock:
            existing = self._store.get(job_id)
            if existing is not None and existing.status == "running":
                logger.info(f"Job {job_id} already running", extra={"job_id": job_id})
                return existing

            job = Job(id=job_id)
            self._store.put(job)

        task = asyncio.get_running_loop().create_task(self._run(job, work_fn))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(f"Started job {job_id}", extra={"job_id": job_id})
        return job

    def subscribe(self, job_id: str) -> JobSubscription | None:
        """
        Attach a new subscriber to a job.

        The subscription's queue holds the full progress history before any
        live event. Must be called from the event loop that will consume it.

        Returns:
            JobSubscription, or None if the job does not exist
        """
        job = self._store.get(job_id)
        if job is None:
            return None

        subscription = JobSubscription(job, asyncio.get_running_loop())
        with job.lock:
            for event in job.progress:
                subscription._deliver(event)
            job.subscribers.add(subscription)
        return subscription

    def emit(self, job: Job, event: ProgressEvent) -> None:
        """Append to the job's log and notify every current subscriber."""
        with job.lock:
            job.progress.append(event)
            for subscription in list(job.subscribers):
                subscription._deliver(event)

    async def _run(self, job: Job, work_fn: WorkFn) -> None:
        # A `done` event from the work is held back until the result is recorded
        held_done: list[ProgressEvent] = []

        def emit(event: ProgressEvent) -> None:
            if event.step == "done":
                held_done.append(event)
                return
            self.emit(job, event)

        try:
            result = await work_fn(emit)
        except Exception as e:
            message = str(e) or type(e).__name__
            job.error = message
            job.finished_at = _utc_now()
            job.status = "error"
            logger.exception(f"Job {job.id} failed: {message}", extra={"job_id": job.id})
            self.emit(job, ProgressEvent(step="error", message=message, progress=-1))
            return

        job.result = result
        job.finished_at = _utc_now()
        job.status = "done"
        self.emit(
            job,
            held_done[-1] if held_done else ProgressEvent(step="done", message="Completed", progress=100),
        )
        logger.info(f"Job {job.id} completed", extra={"job_id": job.id})


@lru_cache(maxsize=1)
def get_job_registry() -> JobRegistry:
    """Process-wide job registry (cached singleton)."""
    return JobRegistry()


def matrix_job_id(vertical_id: str) -> str:
    return f"matrix-{vertical_id}"


def dfd_job_id(vertical_id: str) -> str:
    return f"dfd-{vertical_id}"

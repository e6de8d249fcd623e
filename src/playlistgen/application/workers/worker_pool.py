"""Worker Pool - fixed-size concurrent consumers for persistent jobs.

Hey future me - this DRAINS the job tables the sync fills!

EXECUTION MODEL:
```
list_pending(batch_size) ──► dispatcher ──► asyncio.Queue(maxsize=workers) ──► worker 1..N
                                                                                   │
                                                 task(job, cancel_event) ──────────┤
                                                                                   │
                                      mark_completed / mark_failed (serialized by Database)
```

RULES:
- Dispatch order == list_pending order (FIFO). Completion order is NOT.
- A failing task marks ITS job failed and the worker moves on.
- A failing status WRITE is collected; the first one is raised after every worker
  stopped. Outcomes other workers already committed stay committed.
- Cancellation (cancel_event.set()): dispatcher stops feeding, workers stop before
  their next job, a running task is interrupted. Interrupted and unstarted jobs are
  left PENDING (never half-done). run_batch then raises BatchCancelledError.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from playlistgen.application.workers.job_queue import JobQueue
from playlistgen.domain.entities import PendingJob
from playlistgen.domain.exceptions import (
    BatchCancelledError,
    JobExecutionError,
    JobPersistenceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A task gets the job and the batch's cancel event; raising fails the job.
JobTask = Callable[[PendingJob, asyncio.Event], Awaitable[None]]

DEFAULT_TASK_DELAY = 0.1


async def simulate_processing(
    job: PendingJob,
    cancel_event: asyncio.Event,
    delay: float = DEFAULT_TASK_DELAY,
) -> None:
    """Placeholder for real audio analysis / embedding work.

    Waits ``delay`` seconds, or raises BatchCancelledError as soon as the
    cancel event is set.
    """
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except TimeoutError:
        return
    raise BatchCancelledError(f"job {job.id} interrupted")


async def _unless_cancelled(
    awaitable: Awaitable[T], cancel_event: asyncio.Event
) -> tuple[bool, T | None]:
    """Await ``awaitable`` unless the cancel event fires first.

    Returns (True, result) when the awaitable won, (False, None) otherwise.
    """
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()
    if task in done:
        return True, task.result()
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    return False, None


@dataclass
class BatchResult:
    """What happened to the jobs of one batch."""

    dispatched: int = 0
    completed: int = 0
    failed: int = 0
    interrupted: int = 0
    errors: list[JobPersistenceError] = field(default_factory=list)

    @property
    def finished(self) -> int:
        return self.completed + self.failed


class WorkerPool:
    """Drain batches of pending jobs with N concurrent workers.

    Hey future me - the store handle is shared by all workers but Database
    serializes every status write, so N workers run N tasks concurrently but
    write one at a time. That's fine while tasks are slow and writes are cheap.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        task: JobTask | None = None,
        task_delay: float = DEFAULT_TASK_DELAY,
    ) -> None:
        """Initialize the pool.

        Args:
            job_queue: Queue accessor for the job kind being processed
            task: Work to run per job (defaults to the fixed-delay placeholder)
            task_delay: Delay used by the placeholder task
        """
        self._job_queue = job_queue
        self._task_delay = task_delay
        self._task: JobTask = task or self._placeholder_task

    async def _placeholder_task(
        self, job: PendingJob, cancel_event: asyncio.Event
    ) -> None:
        await simulate_processing(job, cancel_event, delay=self._task_delay)

    @property
    def job_queue(self) -> JobQueue:
        return self._job_queue

    async def run_batch(
        self,
        jobs: Sequence[PendingJob],
        worker_count: int,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Run one batch to completion.

        Raises:
            ValidationError: worker_count < 1
            JobPersistenceError: first failure writing a job outcome
            BatchCancelledError: cancel_event was set before the batch finished
        """
        if worker_count <= 0:
            raise ValidationError("workers must be greater than zero")

        cancel = cancel_event or asyncio.Event()
        result = BatchResult()
        queue: asyncio.Queue[PendingJob | None] = asyncio.Queue(maxsize=worker_count)

        async def dispatch() -> None:
            for job in jobs:
                if cancel.is_set():
                    return
                ok, _ = await _unless_cancelled(queue.put(job), cancel)
                if not ok:
                    return
                result.dispatched += 1
            # One stop marker per worker.
            for _ in range(worker_count):
                ok, _ = await _unless_cancelled(queue.put(None), cancel)
                if not ok:
                    return

        # If one worker raises, the TaskGroup cancels and awaits the dispatcher and
        # the other workers before the error leaves run_batch.
        try:
            async with asyncio.TaskGroup() as group:
                group.create_task(dispatch())
                for worker_id in range(1, worker_count + 1):
                    group.create_task(self._work(worker_id, queue, cancel, result))
        except ExceptionGroup as eg:
            raise eg.exceptions[0]

        logger.info(
            "worker.batch_finished",
            extra={
                "kind": self._job_queue.kind.value,
                "jobs": len(jobs),
                "dispatched": result.dispatched,
                "completed": result.completed,
                "failed": result.failed,
                "interrupted": result.interrupted,
                "persistence_errors": len(result.errors),
            },
        )

        if result.errors:
            raise result.errors[0]
        if cancel.is_set():
            raise BatchCancelledError()
        return result

    async def _work(
        self,
        worker_id: int,
        queue: "asyncio.Queue[PendingJob | None]",
        cancel: asyncio.Event,
        result: BatchResult,
    ) -> None:
        while not cancel.is_set():
            ok, job = await _unless_cancelled(queue.get(), cancel)
            if not ok or job is None:
                return
            if cancel.is_set():
                # Picked up but never started: stays pending.
                return
            await self._process(worker_id, job, cancel, result)

    async def _process(
        self,
        worker_id: int,
        job: PendingJob,
        cancel: asyncio.Event,
        result: BatchResult,
    ) -> None:
        context: dict[str, Any] = {
            "worker": worker_id,
            "kind": job.kind.value,
            "job_id": job.id,
            "navidrome_id": job.track.id,
            "title": job.track.title,
            "path": job.track.path,
        }
        logger.info("worker.job_started", extra=context)

        try:
            await self._task(job, cancel)
        except BatchCancelledError:
            result.interrupted += 1
            logger.info("worker.job_interrupted", extra=context)
            return
        except Exception as e:
            # Task failures belong to the job, not the batch.
            failure = (
                e
                if isinstance(e, JobExecutionError)
                else JobExecutionError(str(e) or type(e).__name__, job_id=job.id)
            )
            logger.error(
                "worker.job_failed", extra={**context, "error": failure.message}
            )
            await self._record(job, result, error=failure)
            return

        await self._record(job, result)

    async def _record(
        self,
        job: PendingJob,
        result: BatchResult,
        error: JobExecutionError | None = None,
    ) -> None:
        try:
            if error is None:
                await self._job_queue.mark_completed(job.id)
            else:
                await self._job_queue.mark_failed(job.id, error.message)
        except JobPersistenceError as e:
            logger.error(
                "worker.outcome_not_saved",
                extra={"job_id": job.id, "error": str(e)},
            )
            result.errors.append(e)
            return

        if error is None:
            result.completed += 1
            logger.info("worker.job_completed", extra={"job_id": job.id})
        else:
            result.failed += 1

    async def run_until_empty(
        self,
        batch_size: int,
        worker_count: int,
        process_all: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        """Fetch and run batches; return how many jobs were handed to workers.

        Runs a single batch unless ``process_all`` is set, in which case it keeps
        going until list_pending comes back empty.

        Raises:
            ValidationError: batch_size or worker_count < 1
            JobPersistenceError: a batch could not save an outcome
            BatchCancelledError: cancellation was requested
        """
        if batch_size <= 0:
            raise ValidationError("batch-size must be greater than zero")
        if worker_count <= 0:
            raise ValidationError("workers must be greater than zero")

        cancel = cancel_event or asyncio.Event()
        kind = self._job_queue.kind.value
        total = 0
        start = time.monotonic()

        while True:
            if cancel.is_set():
                raise BatchCancelledError()

            jobs = await self._job_queue.list_pending(batch_size)
            if not jobs:
                if total == 0:
                    logger.info("worker.no_pending_jobs", extra={"kind": kind})
                break

            logger.info(
                "worker.batch_started",
                extra={"kind": kind, "jobs": len(jobs), "workers": worker_count},
            )
            await self.run_batch(jobs, worker_count, cancel)
            total += len(jobs)

            if not process_all:
                break

        logger.info(
            "worker.processing_complete",
            extra={
                "kind": kind,
                "processed_jobs": total,
                "duration_ms": int((time.monotonic() - start) * 1000),
            },
        )
        return total

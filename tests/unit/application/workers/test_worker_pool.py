"""Tests for the worker pool."""

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from playlistgen.application.workers import JobQueue, WorkerPool, simulate_processing
from playlistgen.domain.entities import JobKind, JobStatus, PendingJob, Track
from playlistgen.domain.exceptions import (
    BatchCancelledError,
    JobExecutionError,
    JobPersistenceError,
    ValidationError,
)
from playlistgen.infrastructure.persistence import Database, TrackRepository


async def instant_task(job: PendingJob, cancel_event: asyncio.Event) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def audio_queue(database: Database) -> JobQueue:
    return JobQueue(database, JobKind.AUDIO)


@pytest.fixture
def enqueue_jobs(
    database: Database, audio_queue: JobQueue, make_track: Callable[..., Track]
):
    """Store `count` tracks and give each a pending audio job."""

    async def _enqueue(count: int) -> list[PendingJob]:
        async with database.session_scope() as session:
            repo = TrackRepository(session)
            ids = []
            for i in range(1, count + 1):
                await repo.upsert(make_track(str(i)))
                ids.append(await repo.get_id(str(i)))
        for track_id in ids:
            await audio_queue.enqueue(track_id)
        return await audio_queue.list_pending(count)

    return _enqueue


class TestSimulateProcessing:
    """Test the placeholder task."""

    async def test_returns_after_delay(self) -> None:
        """Test that the task finishes normally without cancellation."""
        job = PendingJob(id=1, kind=JobKind.AUDIO, track=Track(id="1"))
        await simulate_processing(job, asyncio.Event(), delay=0.01)

    async def test_raises_when_cancelled(self) -> None:
        """Test that a set cancel event interrupts the wait."""
        job = PendingJob(id=1, kind=JobKind.AUDIO, track=Track(id="1"))
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(BatchCancelledError):
            await simulate_processing(job, cancel, delay=10)


class TestRunBatch:
    """Test run_batch against a real queue."""

    async def test_more_jobs_than_workers_all_finish(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that M > N jobs all reach a terminal state."""
        jobs = await enqueue_jobs(7)
        pool = WorkerPool(audio_queue, task=instant_task)

        result = await pool.run_batch(jobs, worker_count=3)

        assert result.dispatched == 7
        assert result.completed == 7
        assert result.finished == 7
        counts = await audio_queue.counts()
        assert counts[JobStatus.COMPLETED] == 7
        assert counts[JobStatus.PENDING] == 0

    async def test_placeholder_task_is_used_by_default(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test the default fixed-delay task completes jobs."""
        jobs = await enqueue_jobs(3)
        pool = WorkerPool(audio_queue, task_delay=0.01)

        result = await pool.run_batch(jobs, worker_count=2)

        assert result.completed == 3

    async def test_failing_task_marks_job_failed_and_continues(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that one bad job doesn't stop the others."""
        jobs = await enqueue_jobs(4)

        async def flaky(job: PendingJob, cancel_event: asyncio.Event) -> None:
            if job.track.id == "2":
                raise ValueError("unsupported codec")

        result = await WorkerPool(audio_queue, task=flaky).run_batch(jobs, 2)

        assert result.completed == 3
        assert result.failed == 1
        failed = await audio_queue.get(jobs[1].id)
        assert failed is not None
        assert failed.status is JobStatus.FAILED
        assert failed.error == "unsupported codec"

    async def test_job_execution_error_message_is_kept(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that JobExecutionError messages are stored as-is."""
        [job] = await enqueue_jobs(1)

        async def broken(job: PendingJob, cancel_event: asyncio.Event) -> None:
            raise JobExecutionError("analysis timed out", job_id=job.id)

        await WorkerPool(audio_queue, task=broken).run_batch([job], 1)

        stored = await audio_queue.get(job.id)
        assert stored is not None
        assert stored.error == "analysis timed out"

    async def test_worker_count_must_be_positive(self, audio_queue: JobQueue) -> None:
        """Test argument validation."""
        pool = WorkerPool(audio_queue, task=instant_task)

        with pytest.raises(ValidationError):
            await pool.run_batch([], worker_count=0)

    async def test_empty_batch(self, audio_queue: JobQueue) -> None:
        """Test that an empty batch returns immediately."""
        result = await WorkerPool(audio_queue, task=instant_task).run_batch([], 4)

        assert result.dispatched == 0
        assert result.finished == 0


class TestRunBatchPersistenceErrors:
    """Test outcome write failures."""

    async def test_first_persistence_error_is_raised_after_drain(self) -> None:
        """Test that a failed status write surfaces without stopping other jobs."""
        queue = MagicMock(spec=JobQueue)
        queue.kind = JobKind.AUDIO

        async def mark_completed(job_id: int) -> None:
            if job_id == 2:
                raise JobPersistenceError("database is locked", job_id=job_id)

        queue.mark_completed = AsyncMock(side_effect=mark_completed)
        jobs = [
            PendingJob(id=i, kind=JobKind.AUDIO, track=Track(id=str(i)))
            for i in range(1, 5)
        ]

        pool = WorkerPool(queue, task=instant_task)
        with pytest.raises(JobPersistenceError) as exc_info:
            await pool.run_batch(jobs, worker_count=2)

        assert exc_info.value.job_id == 2
        assert queue.mark_completed.await_count == 4

    async def test_unexpected_error_stops_sibling_workers(self) -> None:
        """Test that an unexpected write error cancels the other running jobs."""
        queue = MagicMock(spec=JobQueue)
        queue.kind = JobKind.AUDIO
        queue.mark_completed = AsyncMock(side_effect=RuntimeError("driver crashed"))
        second_started = asyncio.Event()
        cancelled: list[int] = []

        async def task(job: PendingJob, cancel_event: asyncio.Event) -> None:
            if job.id == 1:
                await second_started.wait()
                return
            second_started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(job.id)
                raise

        jobs = [
            PendingJob(id=i, kind=JobKind.AUDIO, track=Track(id=str(i)))
            for i in (1, 2)
        ]

        with pytest.raises(RuntimeError, match="driver crashed"):
            await asyncio.wait_for(
                WorkerPool(queue, task=task).run_batch(jobs, worker_count=2),
                timeout=5,
            )

        assert cancelled == [2]

    async def test_missing_job_row_surfaces(
        self, database: Database, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that a job deleted under the pool is reported, not ignored."""
        jobs = await enqueue_jobs(2)
        ghost = PendingJob(id=999, kind=JobKind.AUDIO, track=Track(id="ghost"))

        pool = WorkerPool(audio_queue, task=instant_task)
        with pytest.raises(JobPersistenceError):
            await pool.run_batch([*jobs, ghost], worker_count=2)

        counts = await audio_queue.counts()
        assert counts[JobStatus.COMPLETED] == 2


class TestRunBatchCancellation:
    """Test cancellation mid-batch."""

    async def test_cancel_interrupts_running_jobs(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that cancelling leaves interrupted and unstarted jobs pending."""
        jobs = await enqueue_jobs(6)
        cancel = asyncio.Event()
        pool = WorkerPool(audio_queue, task_delay=30)

        asyncio.get_running_loop().call_later(0.05, cancel.set)
        with pytest.raises(BatchCancelledError):
            await asyncio.wait_for(pool.run_batch(jobs, 2, cancel), timeout=5)

        counts = await audio_queue.counts()
        assert counts[JobStatus.PENDING] == 6

    async def test_committed_outcomes_survive_cancel(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that work finished before cancellation stays recorded."""
        jobs = await enqueue_jobs(5)
        cancel = asyncio.Event()

        async def cancel_after_first(
            job: PendingJob, cancel_event: asyncio.Event
        ) -> None:
            if job.track.id == "1":
                cancel_event.set()

        pool = WorkerPool(audio_queue, task=cancel_after_first)
        with pytest.raises(BatchCancelledError):
            await pool.run_batch(jobs, 1, cancel)

        first = await audio_queue.get(jobs[0].id)
        assert first is not None
        assert first.status is JobStatus.COMPLETED
        for job in jobs[1:]:
            stored = await audio_queue.get(job.id)
            assert stored is not None
            assert stored.status is JobStatus.PENDING

    async def test_no_job_left_in_unknown_state(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that every job is pending or terminal after a cancel."""
        jobs = await enqueue_jobs(8)
        cancel = asyncio.Event()

        async def slow_then_cancel(
            job: PendingJob, cancel_event: asyncio.Event
        ) -> None:
            if job.track.id == "4":
                cancel_event.set()
            await simulate_processing(job, cancel_event, delay=0.01)

        with pytest.raises(BatchCancelledError):
            await WorkerPool(audio_queue, task=slow_then_cancel).run_batch(
                jobs, 3, cancel
            )

        counts = await audio_queue.counts()
        assert sum(counts.values()) == 8
        assert counts[JobStatus.FAILED] == 0


class TestRunUntilEmpty:
    """Test the batch loop."""

    async def test_single_batch_without_process_all(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that only one batch runs by default."""
        await enqueue_jobs(5)
        pool = WorkerPool(audio_queue, task=instant_task)

        processed = await pool.run_until_empty(batch_size=2, worker_count=2)

        assert processed == 2
        assert (await audio_queue.counts())[JobStatus.PENDING] == 3

    async def test_process_all_drains_queue(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that process_all keeps going until nothing is pending."""
        await enqueue_jobs(5)
        pool = WorkerPool(audio_queue, task=instant_task)

        processed = await pool.run_until_empty(
            batch_size=2, worker_count=2, process_all=True
        )

        assert processed == 5
        counts = await audio_queue.counts()
        assert counts[JobStatus.PENDING] == 0
        assert counts[JobStatus.COMPLETED] == 5

    async def test_failed_jobs_are_not_retried(
        self, audio_queue: JobQueue, enqueue_jobs
    ) -> None:
        """Test that process_all terminates when every job fails."""
        await enqueue_jobs(3)

        async def always_fails(job: PendingJob, cancel_event: asyncio.Event) -> None:
            raise RuntimeError("nope")

        pool = WorkerPool(audio_queue, task=always_fails)
        processed = await pool.run_until_empty(
            batch_size=2, worker_count=2, process_all=True
        )

        assert processed == 3
        assert (await audio_queue.counts())[JobStatus.FAILED] == 3

    async def test_empty_queue_returns_zero(self, audio_queue: JobQueue) -> None:
        """Test the nothing-to-do path."""
        pool = WorkerPool(audio_queue, task=instant_task)

        assert await pool.run_until_empty(batch_size=10, worker_count=2) == 0

    async def test_already_cancelled(self, audio_queue: JobQueue, enqueue_jobs) -> None:
        """Test that a pre-set cancel event stops before listing jobs."""
        await enqueue_jobs(2)
        cancel = asyncio.Event()
        cancel.set()
        pool = WorkerPool(audio_queue, task=instant_task)

        with pytest.raises(BatchCancelledError):
            await pool.run_until_empty(10, 2, cancel_event=cancel)

        assert (await audio_queue.counts())[JobStatus.PENDING] == 2

    @pytest.mark.parametrize(
        ("batch_size", "worker_count"), [(0, 1), (1, 0), (-1, 4)]
    )
    async def test_invalid_arguments(
        self, audio_queue: JobQueue, batch_size: int, worker_count: int
    ) -> None:
        """Test that non-positive sizes are rejected."""
        pool = WorkerPool(audio_queue, task=instant_task)

        with pytest.raises(ValidationError):
            await pool.run_until_empty(batch_size, worker_count)

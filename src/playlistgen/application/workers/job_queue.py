"""Job Queue - typed access to one persistent job table.

Hey future me - this is the PERSISTENT queue the worker pool drains!

The reconciliation engine enqueues inside its own transaction (through
JobRepository directly, so enqueue and track upsert commit together). Everything
here opens its own short transaction through Database.session_scope(), which
serializes it against a running sync.

ARCHITECTURE:
```
ReconciliationService ──enqueue──► track_audio_jobs / track_embedding_jobs
                                           │
                      JobQueue.list_pending(limit)  (FIFO by id)
                                           │
                                      WorkerPool
                                           │
                 JobQueue.mark_completed / mark_failed(job_id, error)
```

There is NO automatic retry. A failed job stays failed until the next sync finds
its track changed (or runs with force_processing_jobs) and re-enqueues it.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from playlistgen.domain.entities import Job, JobKind, JobStatus, PendingJob
from playlistgen.domain.exceptions import JobPersistenceError, StorageError
from playlistgen.infrastructure.persistence.database import Database
from playlistgen.infrastructure.persistence.models import utc_now
from playlistgen.infrastructure.persistence.repositories import JobRepository

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


class JobQueue:
    """Database-backed queue for one job kind."""

    def __init__(self, database: Database, kind: JobKind = JobKind.AUDIO) -> None:
        """Initialize the accessor.

        Args:
            database: Owned store handle
            kind: Which job table this queue reads and writes
        """
        self._database = database
        self._kind = kind

    @property
    def kind(self) -> JobKind:
        return self._kind

    async def enqueue(self, track_id: int) -> None:
        """Make the track's job pending (insert or reset).

        Raises:
            StorageError: the write failed
        """
        try:
            async with self._database.session_scope() as session:
                await JobRepository(session, self._kind).enqueue(track_id)
        except SQLAlchemyError as e:
            raise StorageError(f"enqueue {self._kind.value} job: {e}") from e

        logger.debug(
            "job.enqueued", extra={"kind": self._kind.value, "track_id": track_id}
        )

    async def list_pending(self, limit: int = DEFAULT_LIST_LIMIT) -> list[PendingJob]:
        """Return up to ``limit`` pending jobs, oldest first.

        Safe to call repeatedly to drain the queue page by page: every page only
        holds jobs that are still pending at the time of the call.
        """
        if limit <= 0:
            limit = DEFAULT_LIST_LIMIT
        try:
            async with self._database.session_scope() as session:
                return await JobRepository(session, self._kind).list_pending(limit)
        except SQLAlchemyError as e:
            raise StorageError(f"list {self._kind.value} jobs: {e}") from e

    async def mark_completed(self, job_id: int) -> None:
        """pending -> completed, stamps processed_at and last_attempt_at."""
        await self._record(job_id, JobStatus.COMPLETED)

    async def mark_failed(self, job_id: int, error: str | BaseException | None) -> None:
        """pending -> failed with the error message; processed_at stays unset."""
        message = str(error) if error is not None else None
        await self._record(job_id, JobStatus.FAILED, message)

    async def _record(
        self, job_id: int, status: JobStatus, error: str | None = None
    ) -> None:
        try:
            async with self._database.session_scope() as session:
                touched = await JobRepository(session, self._kind).record_outcome(
                    job_id, status, attempted_at=utc_now(), error=error
                )
        except SQLAlchemyError as e:
            raise JobPersistenceError(
                f"update {self._kind.value} job {job_id} status: {e}", job_id=job_id
            ) from e

        if touched == 0:
            raise JobPersistenceError(
                f"{self._kind.value} job {job_id} not found", job_id=job_id
            )

    async def get(self, job_id: int) -> Job | None:
        async with self._database.session_scope() as session:
            return await JobRepository(session, self._kind).get(job_id)

    async def get_for_track(self, track_id: int) -> Job | None:
        async with self._database.session_scope() as session:
            return await JobRepository(session, self._kind).get_for_track(track_id)

    async def counts(self) -> dict[JobStatus, int]:
        """Number of jobs per status."""
        async with self._database.session_scope() as session:
            return await JobRepository(session, self._kind).count_by_status()

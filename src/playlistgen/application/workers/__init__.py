"""Background job processing."""

from playlistgen.application.workers.job_queue import JobQueue
from playlistgen.application.workers.worker_pool import (
    BatchResult,
    JobTask,
    WorkerPool,
    simulate_processing,
)

__all__ = [
    "BatchResult",
    "JobQueue",
    "JobTask",
    "WorkerPool",
    "simulate_processing",
]

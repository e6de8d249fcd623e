"""Infrastructure persistence layer."""

from .database import Database, open_database
from .models import (
    Base,
    SyncModel,
    TrackAudioJobModel,
    TrackEmbeddingJobModel,
    TrackModel,
    TrackSyncStatusModel,
)
from .repositories import (
    JobRepository,
    SyncSessionRepository,
    SyncStatusRepository,
    TrackRepository,
)

__all__ = [
    # Database
    "Database",
    "open_database",
    "Base",
    # Models
    "TrackModel",
    "SyncModel",
    "TrackSyncStatusModel",
    "TrackAudioJobModel",
    "TrackEmbeddingJobModel",
    # Repositories
    "TrackRepository",
    "SyncStatusRepository",
    "SyncSessionRepository",
    "JobRepository",
]

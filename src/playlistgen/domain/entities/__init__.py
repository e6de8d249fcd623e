"""Domain entities."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class JobKind(str, Enum):
    """Kinds of deferred per-track work. Each kind has its own job table."""

    AUDIO = "audio"
    EMBEDDING = "embedding"


class JobStatus(str, Enum):
    """Job lifecycle: pending -> completed | failed."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PENDING


class SyncSessionStatus(str, Enum):
    """Status of one reconciliation run."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Hey future me - Track is both the snapshot record coming from the catalog and the
# canonical row we keep. id is the REMOTE (Navidrome) id, not our integer primary key!
# Optional fields stay None when Navidrome didn't report them - never 0 or "".
@dataclass
class Track:
    """Normalized track metadata."""

    id: str
    title: str = ""
    artist: str = ""
    artist_id: str = ""
    album: str = ""
    album_id: str = ""
    album_artist: str = ""
    genre: str | None = None
    year: int | None = None
    track_number: int | None = None
    disc_number: int | None = None
    duration_seconds: int = 0
    bitrate: int | None = None
    file_size: int | None = None
    path: str = ""
    content_type: str | None = None
    suffix: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def changed_at(self) -> datetime | None:
        """When the catalog last touched this track (updated_at, else created_at)."""
        return self.updated_at or self.created_at


# The catalog hands out the same shape the store keeps.
RemoteTrack = Track


@dataclass
class SaveStats:
    """Outcome of one reconciliation pass."""

    fetched: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0


@dataclass
class SyncSession:
    """Audit record of one reconciliation run."""

    id: int
    started_at: datetime
    status: SyncSessionStatus
    completed_at: datetime | None = None
    tracks_processed: int = 0
    tracks_updated: int = 0
    tracks_deleted: int = 0

    @property
    def tracks_skipped(self) -> int:
        return self.tracks_processed - self.tracks_updated


@dataclass
class TrackSyncStatus:
    """Per-track bookkeeping: last reconciliation time and owning session."""

    track_id: int
    navidrome_id: str
    last_synced_at: datetime | None
    sync_id: int


@dataclass
class Job:
    """One (track, kind) unit of deferred work."""

    id: int
    kind: JobKind
    track_id: int
    status: JobStatus
    attempts: int = 0
    processed_at: datetime | None = None
    error: str | None = None
    last_attempt_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class PendingJob:
    """A pending job joined with the track it belongs to."""

    id: int
    kind: JobKind
    track: Track


__all__ = [
    "JobKind",
    "JobStatus",
    "SyncSessionStatus",
    "Track",
    "RemoteTrack",
    "SaveStats",
    "SyncSession",
    "TrackSyncStatus",
    "Job",
    "PendingJob",
]

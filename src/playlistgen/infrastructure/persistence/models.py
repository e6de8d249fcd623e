"""SQLAlchemy ORM models for playlistgen."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from playlistgen.domain.entities import JobKind


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now() without
# timezone - naive datetimes compare badly against the aware ones coming from Navidrome.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! Aware datetimes go in and naive
# ones come back. ALWAYS run DB values through this before comparing with datetime.now(UTC)
# or you get "can't compare offset-naive and offset-aware" TypeError.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def to_utc(dt: datetime | None) -> datetime | None:
    """Normalize a datetime to UTC before it is written (SQLite drops the offset)."""
    if dt is None:
        return None
    return ensure_utc_aware(dt).astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, id is OUR integer key (jobs and sync status point at it), navidrome_id is
# the catalog's stable id and the upsert key. Nullable columns map 1:1 to the optional
# Track fields - NULL means "not reported", never 0.
class TrackModel(Base):
    """Canonical track row keyed by the remote (Navidrome) id."""

    __tablename__ = "tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    navidrome_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    artist: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    artist_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    album: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    album_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    album_artist: Mapped[str | None] = mapped_column(String(512), nullable=True)
    genre: Mapped[str | None] = mapped_column(String(255), nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disc_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bitrate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    path: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    suffix: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SyncModel(Base):
    """One reconciliation session (audit row)."""

    __tablename__ = "navidrome_syncs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="in_progress"
    )
    tracks_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tracks_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tracks_deleted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# Hey future me - ondelete=CASCADE does the "status exists iff track exists" invariant
# for us, but ONLY with PRAGMA foreign_keys=ON (Database turns it on per connection).
class TrackSyncStatusModel(Base):
    """Per-track sync bookkeeping, one row per track."""

    __tablename__ = "navidrome_track_sync_status"

    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True
    )
    navidrome_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sync_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("navidrome_syncs.id"), nullable=False
    )


class _JobColumns:
    """Columns shared by every job table."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


# Yo, track_id is UNIQUE - that's what makes enqueue an upsert per (track, kind)
# instead of an append. Job rows go away with their track (CASCADE).
class TrackAudioJobModel(_JobColumns, Base):
    """Audio analysis job per track."""

    __tablename__ = "track_audio_jobs"
    __table_args__ = (Index("ix_track_audio_jobs_status_id", "status", "id"),)

    track_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tracks.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )


class TrackEmbeddingJobModel(_JobColumns, Base):
    """Embedding job per track."""

    __tablename__ = "track_embedding_jobs"
    __table_args__ = (Index("ix_track_embedding_jobs_status_id", "status", "id"),)

    track_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tracks.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )


JobModel = type[TrackAudioJobModel] | type[TrackEmbeddingJobModel]

JOB_MODELS: dict[JobKind, JobModel] = {
    JobKind.AUDIO: TrackAudioJobModel,
    JobKind.EMBEDDING: TrackEmbeddingJobModel,
}


def job_model_for(kind: JobKind) -> JobModel:
    """Return the ORM model backing a job kind."""
    return JOB_MODELS[kind]

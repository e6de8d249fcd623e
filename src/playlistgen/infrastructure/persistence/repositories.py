"""Repository implementations over the track store tables.

Every repository wraps ONE AsyncSession handed in by the caller - they never commit.
Transaction boundaries belong to Database.session_scope(), so a reconciliation pass can
use several repositories inside a single atomic transaction.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from playlistgen.domain.entities import (
    Job,
    JobKind,
    JobStatus,
    PendingJob,
    SyncSession,
    SyncSessionStatus,
    Track,
    TrackSyncStatus,
)
from playlistgen.infrastructure.persistence.models import (
    SyncModel,
    TrackModel,
    TrackSyncStatusModel,
    ensure_utc_aware,
    job_model_for,
    to_utc,
)

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement; delete in chunks well below it.
DELETE_CHUNK_SIZE = 500


def _blank_to_none(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value


def _aware(value: datetime | None) -> datetime | None:
    return ensure_utc_aware(value) if value is not None else None


def track_to_row(track: Track) -> dict[str, Any]:
    """Map a Track to column values. Blank optional strings are stored as NULL."""
    return {
        "navidrome_id": track.id,
        "title": track.title,
        "artist": track.artist,
        "artist_id": _blank_to_none(track.artist_id),
        "album": track.album,
        "album_id": _blank_to_none(track.album_id),
        "album_artist": _blank_to_none(track.album_artist),
        "genre": _blank_to_none(track.genre),
        "year": track.year,
        "track_number": track.track_number,
        "disc_number": track.disc_number,
        "duration_seconds": track.duration_seconds,
        "bitrate": track.bitrate,
        "file_size": track.file_size,
        "path": track.path,
        "content_type": _blank_to_none(track.content_type),
        "suffix": track.suffix,
        "created_at": to_utc(track.created_at),
        "updated_at": to_utc(track.updated_at),
    }


def model_to_track(model: TrackModel) -> Track:
    """Map a TrackModel row back to a Track."""
    return Track(
        id=model.navidrome_id,
        title=model.title,
        artist=model.artist,
        artist_id=model.artist_id or "",
        album=model.album,
        album_id=model.album_id or "",
        album_artist=model.album_artist or "",
        genre=model.genre,
        year=model.year,
        track_number=model.track_number,
        disc_number=model.disc_number,
        duration_seconds=model.duration_seconds,
        bitrate=model.bitrate,
        file_size=model.file_size,
        path=model.path,
        content_type=model.content_type,
        suffix=model.suffix,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
    )


class TrackRepository:
    """SQLAlchemy implementation of the tracks table operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    # Hey future me - this is an UPSERT keyed by navidrome_id! Existing rows get every
    # mutable column overwritten; our integer id never changes, so jobs and sync status
    # keep pointing at the right row.
    async def upsert(self, track: Track) -> None:
        """Insert the track or overwrite the row with the same remote id."""
        values = track_to_row(track)
        stmt = sqlite_insert(TrackModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[TrackModel.navidrome_id],
            set_={
                column: stmt.excluded[column]
                for column in values
                if column != "navidrome_id"
            },
        )
        await self.session.execute(stmt)

    async def get_id(self, navidrome_id: str) -> int | None:
        """Resolve the internal id for a remote id."""
        result = await self.session.execute(
            select(TrackModel.id).where(TrackModel.navidrome_id == navidrome_id)
        )
        return result.scalar_one_or_none()

    async def get_by_navidrome_id(self, navidrome_id: str) -> Track | None:
        """Get a track by its remote id."""
        result = await self.session.execute(
            select(TrackModel).where(TrackModel.navidrome_id == navidrome_id)
        )
        model = result.scalar_one_or_none()
        return model_to_track(model) if model else None

    async def list_navidrome_ids(self) -> list[str]:
        """All remote ids currently stored, in insertion order."""
        result = await self.session.execute(
            select(TrackModel.navidrome_id).order_by(TrackModel.id)
        )
        return list(result.scalars().all())

    async def delete_by_navidrome_ids(self, navidrome_ids: Iterable[str]) -> int:
        """Delete tracks by remote id. Sync status and job rows cascade."""
        ids = list(navidrome_ids)
        deleted = 0
        for start in range(0, len(ids), DELETE_CHUNK_SIZE):
            chunk = ids[start : start + DELETE_CHUNK_SIZE]
            result = await self.session.execute(
                delete(TrackModel).where(TrackModel.navidrome_id.in_(chunk))
            )
            deleted += result.rowcount or 0  # type: ignore[attr-defined]
        return deleted

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(TrackModel.id)))
        return int(result.scalar_one())


class SyncStatusRepository:
    """Per-track sync status rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_all(self) -> dict[str, TrackSyncStatus]:
        """The full status index keyed by remote id."""
        result = await self.session.execute(select(TrackSyncStatusModel))
        index: dict[str, TrackSyncStatus] = {}
        for model in result.scalars().all():
            index[model.navidrome_id] = TrackSyncStatus(
                track_id=model.track_id,
                navidrome_id=model.navidrome_id,
                last_synced_at=_aware(model.last_synced_at),
                sync_id=model.sync_id,
            )
        return index

    async def upsert(
        self,
        track_id: int,
        navidrome_id: str,
        last_synced_at: datetime | None,
        sync_id: int,
    ) -> None:
        """Insert or refresh the status row of a track."""
        stmt = sqlite_insert(TrackSyncStatusModel).values(
            track_id=track_id,
            navidrome_id=navidrome_id,
            last_synced_at=to_utc(last_synced_at),
            sync_id=sync_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[TrackSyncStatusModel.track_id],
            set_={
                "navidrome_id": stmt.excluded.navidrome_id,
                "last_synced_at": stmt.excluded.last_synced_at,
                "sync_id": stmt.excluded.sync_id,
            },
        )
        await self.session.execute(stmt)

    async def get(self, track_id: int) -> TrackSyncStatus | None:
        model = await self.session.get(TrackSyncStatusModel, track_id)
        if model is None:
            return None
        return TrackSyncStatus(
            track_id=model.track_id,
            navidrome_id=model.navidrome_id,
            last_synced_at=_aware(model.last_synced_at),
            sync_id=model.sync_id,
        )

    async def count(self) -> int:
        result = await self.session.execute(
            select(func.count(TrackSyncStatusModel.track_id))
        )
        return int(result.scalar_one())


class SyncSessionRepository:
    """navidrome_syncs audit rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, started_at: datetime) -> int:
        """Open a session row in in_progress state and return its id."""
        model = SyncModel(
            started_at=to_utc(started_at),
            status=SyncSessionStatus.IN_PROGRESS.value,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def complete(
        self,
        sync_id: int,
        completed_at: datetime,
        processed: int,
        updated: int,
        deleted: int,
    ) -> None:
        """Close a session with its final counts."""
        await self.session.execute(
            update(SyncModel)
            .where(SyncModel.id == sync_id)
            .values(
                completed_at=to_utc(completed_at),
                status=SyncSessionStatus.COMPLETED.value,
                tracks_processed=processed,
                tracks_updated=updated,
                tracks_deleted=deleted,
            )
        )

    async def get(self, sync_id: int) -> SyncSession | None:
        model = await self.session.get(SyncModel, sync_id)
        return self._to_entity(model) if model else None

    async def list_all(self) -> list[SyncSession]:
        result = await self.session.execute(select(SyncModel).order_by(SyncModel.id))
        return [self._to_entity(model) for model in result.scalars().all()]

    @staticmethod
    def _to_entity(model: SyncModel) -> SyncSession:
        return SyncSession(
            id=model.id,
            started_at=ensure_utc_aware(model.started_at),
            status=SyncSessionStatus(model.status),
            completed_at=_aware(model.completed_at),
            tracks_processed=model.tracks_processed,
            tracks_updated=model.tracks_updated,
            tracks_deleted=model.tracks_deleted,
        )


class JobRepository:
    """Operations over one job table (audio or embedding)."""

    def __init__(self, session: AsyncSession, kind: JobKind) -> None:
        self.session = session
        self.kind = kind
        self.model = job_model_for(kind)

    # Hey future me - enqueue is an UPSERT by track_id, NOT an append! One live job per
    # (track, kind). Re-enqueueing starts the job over: pending, no outcome, attempts 0.
    async def enqueue(self, track_id: int) -> None:
        """Make the track's job pending, creating the row if needed."""
        stmt = sqlite_insert(self.model).values(
            track_id=track_id,
            status=JobStatus.PENDING.value,
            processed_at=None,
            error=None,
            attempts=0,
            last_attempt_at=None,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[self.model.track_id],
            set_={
                "status": JobStatus.PENDING.value,
                "processed_at": None,
                "error": None,
                "attempts": 0,
                "last_attempt_at": None,
            },
        )
        await self.session.execute(stmt)

    async def list_pending(self, limit: int) -> list[PendingJob]:
        """Pending jobs with their tracks, oldest job id first."""
        result = await self.session.execute(
            select(self.model.id, TrackModel)
            .join(TrackModel, TrackModel.id == self.model.track_id)
            .where(self.model.status == JobStatus.PENDING.value)
            .order_by(self.model.id)
            .limit(limit)
        )
        return [
            PendingJob(id=job_id, kind=self.kind, track=model_to_track(track))
            for job_id, track in result.all()
        ]

    async def record_outcome(
        self,
        job_id: int,
        status: JobStatus,
        attempted_at: datetime,
        error: str | None = None,
    ) -> int:
        """Write a terminal outcome. Returns the number of rows touched."""
        result = await self.session.execute(
            update(self.model)
            .where(self.model.id == job_id)
            .values(
                status=status.value,
                processed_at=to_utc(attempted_at)
                if status is JobStatus.COMPLETED
                else None,
                error=_blank_to_none(error),
                last_attempt_at=to_utc(attempted_at),
            )
        )
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def get(self, job_id: int) -> Job | None:
        model = await self.session.get(self.model, job_id)
        return self._to_entity(model) if model else None

    async def get_for_track(self, track_id: int) -> Job | None:
        result = await self.session.execute(
            select(self.model).where(self.model.track_id == track_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def count_by_status(self) -> dict[JobStatus, int]:
        result = await self.session.execute(
            select(self.model.status, func.count(self.model.id)).group_by(
                self.model.status
            )
        )
        counts = {status: 0 for status in JobStatus}
        for status, count in result.all():
            counts[JobStatus(status)] = int(count)
        return counts

    def _to_entity(self, model: Any) -> Job:
        return Job(
            id=model.id,
            kind=self.kind,
            track_id=model.track_id,
            status=JobStatus(model.status),
            attempts=model.attempts,
            processed_at=_aware(model.processed_at),
            error=model.error,
            last_attempt_at=_aware(model.last_attempt_at),
            created_at=_aware(model.created_at),
        )

"""Reconciliation of a Navidrome snapshot against the local track store."""

import logging
from collections import Counter
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError

from playlistgen.domain.entities import JobKind, SaveStats, Track, TrackSyncStatus
from playlistgen.domain.exceptions import TransactionError
from playlistgen.domain.ports import ITrackStore
from playlistgen.infrastructure.persistence.database import Database
from playlistgen.infrastructure.persistence.models import ensure_utc_aware, utc_now
from playlistgen.infrastructure.persistence.repositories import (
    JobRepository,
    SyncSessionRepository,
    SyncStatusRepository,
    TrackRepository,
)

logger = logging.getLogger(__name__)


def is_unchanged(track: Track, status: TrackSyncStatus | None) -> bool:
    """True when the stored copy is at least as new as the catalog's.

    A track we have never synced is always changed, and so is one whose
    catalog entry carries no timestamp: without one we can't prove the stored
    copy is current.
    """
    if status is None or status.last_synced_at is None:
        return False
    changed_at = track.changed_at
    if changed_at is None:
        return False
    # Navidrome timestamps without an offset are UTC.
    return ensure_utc_aware(changed_at) <= status.last_synced_at


class ReconciliationService(ITrackStore):
    """Diff a catalog snapshot against stored state and apply it atomically.

    Hey future me - this is THE sync engine! One call = one transaction = one
    navidrome_syncs row:
    1. open a session row (in_progress)
    2. load the whole sync-status index into memory
    3. per track: unchanged -> just relink status to this session;
       changed/new -> upsert track + status, (re)enqueue audio & embedding jobs
    4. delete tracks that vanished from the catalog (status + jobs cascade)
    5. close the session row with counts, commit
    ANY exception rolls ALL of it back - there is never a half-applied sync.
    """

    JOB_KINDS: tuple[JobKind, ...] = (JobKind.AUDIO, JobKind.EMBEDDING)

    def __init__(self, database: Database, force_processing_jobs: bool = False) -> None:
        """Initialize the engine.

        Args:
            database: Owned store handle (caller manages its lifetime)
            force_processing_jobs: Also re-enqueue jobs for unchanged tracks
        """
        self._database = database
        self._force_processing_jobs = force_processing_jobs

    @property
    def force_processing_jobs(self) -> bool:
        return self._force_processing_jobs

    async def save_tracks(self, tracks: list[Track]) -> SaveStats:
        return await self.reconcile(tracks)

    async def reconcile(self, snapshot: Sequence[Track]) -> SaveStats:
        """Apply a snapshot and return what happened.

        Raises:
            TransactionError: any store failure; nothing from this pass is kept
        """
        stats = SaveStats(fetched=len(snapshot))
        if not snapshot:
            logger.info("sync.empty_snapshot")
            return stats

        self._warn_on_duplicates(snapshot)

        try:
            async with self._database.session_scope() as session:
                tracks = TrackRepository(session)
                statuses = SyncStatusRepository(session)
                sessions = SyncSessionRepository(session)
                jobs = [JobRepository(session, kind) for kind in self.JOB_KINDS]

                sync_id = await sessions.create(started_at=utc_now())
                index = await statuses.list_all()

                processed = updated = 0
                seen: set[str] = set()

                # Hey future me - `index` starts as the state BEFORE this sync and is
                # updated after every changed upsert. A duplicate id in one snapshot is
                # judged against what the earlier occurrence just wrote, so an older
                # copy later in the list can't roll last_synced_at back.
                for track in snapshot:
                    processed += 1
                    seen.add(track.id)
                    status = index.get(track.id)

                    if status is not None and is_unchanged(track, status):
                        await statuses.upsert(
                            track_id=status.track_id,
                            navidrome_id=track.id,
                            last_synced_at=status.last_synced_at,
                            sync_id=sync_id,
                        )
                        if self._force_processing_jobs:
                            await self._enqueue(jobs, status.track_id)
                        continue

                    await tracks.upsert(track)
                    updated += 1

                    if status is not None:
                        track_id: int | None = status.track_id
                    else:
                        track_id = await tracks.get_id(track.id)
                    if track_id is None:
                        raise TransactionError(
                            f"track {track.id!r} missing right after upsert"
                        )

                    synced_at = utc_now()
                    await statuses.upsert(
                        track_id=track_id,
                        navidrome_id=track.id,
                        last_synced_at=synced_at,
                        sync_id=sync_id,
                    )
                    index[track.id] = TrackSyncStatus(
                        track_id=track_id,
                        navidrome_id=track.id,
                        last_synced_at=synced_at,
                        sync_id=sync_id,
                    )
                    await self._enqueue(jobs, track_id)

                missing = [nav_id for nav_id in index if nav_id not in seen]
                deleted = 0
                if missing:
                    deleted = await tracks.delete_by_navidrome_ids(missing)

                await sessions.complete(
                    sync_id=sync_id,
                    completed_at=utc_now(),
                    processed=processed,
                    updated=updated,
                    deleted=deleted,
                )
        except TransactionError:
            logger.error("sync.rolled_back", exc_info=True)
            raise
        except SQLAlchemyError as e:
            logger.error("sync.rolled_back", extra={"error": str(e)}, exc_info=True)
            raise TransactionError(f"reconcile tracks: {e}") from e

        stats.updated = updated
        stats.skipped = processed - updated
        stats.deleted = deleted

        logger.info(
            "sync.applied",
            extra={
                "sync_id": sync_id,
                "fetched": stats.fetched,
                "updated": stats.updated,
                "skipped": stats.skipped,
                "deleted": stats.deleted,
            },
        )
        return stats

    @staticmethod
    async def _enqueue(jobs: list[JobRepository], track_id: int) -> None:
        for repo in jobs:
            await repo.enqueue(track_id)

    @staticmethod
    def _warn_on_duplicates(snapshot: Sequence[Track]) -> None:
        counts = Counter(track.id for track in snapshot)
        for nav_id, count in counts.items():
            if count > 1:
                logger.warning(
                    "sync.duplicate_remote_id",
                    extra={"navidrome_id": nav_id, "occurrences": count},
                )

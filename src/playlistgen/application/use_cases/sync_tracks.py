"""Use case for pulling the Navidrome catalog into the track store.

Hey future me - this is what `playlistgen sync` runs! The flow:
1. List every track from the catalog (Navidrome)
2. Hand the snapshot to the store, which reconciles it in ONE transaction

If step 1 fails nothing local was touched. If step 2 fails the store rolled back.
Without a store (no db path) we only report how many tracks the catalog has.
"""

import logging
from dataclasses import dataclass, field

from playlistgen.application.use_cases import UseCase
from playlistgen.domain.entities import SaveStats
from playlistgen.domain.exceptions import DomainException, FetchError
from playlistgen.domain.ports import ICatalogClient, ITrackStore

logger = logging.getLogger(__name__)


@dataclass
class SyncTracksRequest:
    """Request to sync the catalog.

    Nothing to configure per call yet - force-processing lives on the store.
    """


@dataclass
class SyncTracksResponse:
    """Result of one sync."""

    stats: SaveStats = field(default_factory=SaveStats)
    persisted: bool = False


class SyncTracksUseCase(UseCase[SyncTracksRequest, SyncTracksResponse]):
    """Fetch the catalog snapshot and reconcile it."""

    def __init__(
        self, catalog: ICatalogClient, store: ITrackStore | None = None
    ) -> None:
        """Initialize the use case.

        Args:
            catalog: Remote catalog adapter
            store: Track store; None disables persistence
        """
        self._catalog = catalog
        self._store = store

    async def execute(self, request: SyncTracksRequest) -> SyncTracksResponse:
        """Run the sync.

        Raises:
            FetchError: the catalog could not be listed
            TransactionError: the store rolled the pass back
        """
        try:
            tracks = await self._catalog.list_tracks()
        except DomainException:
            raise
        except Exception as e:
            raise FetchError(f"fetch tracks: {e}") from e

        logger.info("sync.fetched", extra={"tracks": len(tracks)})

        if self._store is None:
            return SyncTracksResponse(stats=SaveStats(fetched=len(tracks)))

        store_stats = await self._store.save_tracks(tracks)
        return SyncTracksResponse(
            stats=SaveStats(
                fetched=len(tracks),
                updated=store_stats.updated,
                skipped=store_stats.skipped,
                deleted=store_stats.deleted,
            ),
            persisted=True,
        )

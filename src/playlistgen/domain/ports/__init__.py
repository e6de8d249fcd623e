"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod

from playlistgen.domain.entities import SaveStats, Track


# Hey future me, these are PORTS (Hexagonal Architecture)! The sync use case only knows
# these ABCs - the live Navidrome client and the SQLite store are plugged in from the
# outside, and tests swap in fakes without touching HTTP or a database.
class ICatalogClient(ABC):
    """Remote catalog that can list every track it knows."""

    @abstractmethod
    async def list_tracks(self) -> list[Track]:
        """Return the full catalog snapshot.

        Raises:
            FetchError: transport, auth or response parsing failure
        """
        pass


class ITrackStore(ABC):
    """Durable store that reconciles a catalog snapshot."""

    @abstractmethod
    async def save_tracks(self, tracks: list[Track]) -> SaveStats:
        """Reconcile the snapshot against stored state.

        Raises:
            TransactionError: the whole pass was rolled back
        """
        pass


__all__ = ["ICatalogClient", "ITrackStore"]

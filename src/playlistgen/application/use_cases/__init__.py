"""Application use cases - Business logic orchestration."""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

# Type variables for generic use case pattern
TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")


class UseCase(ABC, Generic[TRequest, TResponse]):
    """Base class for all use cases following command pattern."""

    @abstractmethod
    async def execute(self, request: TRequest) -> TResponse:
        """Execute the use case with the given request."""
        pass


# Import concrete use cases (after UseCase definition to avoid circular imports)
from playlistgen.application.use_cases.sync_tracks import (  # noqa: E402
    SyncTracksRequest,
    SyncTracksResponse,
    SyncTracksUseCase,
)

__all__ = [
    "UseCase",
    "SyncTracksRequest",
    "SyncTracksResponse",
    "SyncTracksUseCase",
]

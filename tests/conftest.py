"""Shared fixtures: an in-memory track store and a track factory."""

import logging
from collections.abc import AsyncIterator, Callable, Iterator
from datetime import UTC, datetime
from typing import Any

import pytest

from playlistgen.config import DatabaseSettings
from playlistgen.domain.entities import Track
from playlistgen.infrastructure.observability.logging import CorrelationIdFilter
from playlistgen.infrastructure.persistence import Database, open_database

IN_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def database_settings() -> DatabaseSettings:
    """Settings pointing at a private in-memory SQLite store."""
    return DatabaseSettings(url=IN_MEMORY_URL)


@pytest.fixture
async def database(database_settings: DatabaseSettings) -> AsyncIterator[Database]:
    """Open store with the schema created; closed after the test."""
    db = await open_database(database_settings)
    yield db
    await db.close()


@pytest.fixture
def make_track() -> Callable[..., Track]:
    """Build a Track with sensible defaults; keyword arguments override them."""

    def _make(track_id: str, **overrides: Any) -> Track:
        fields: dict[str, Any] = {
            "title": f"Song {track_id}",
            "artist": "Test Artist",
            "artist_id": "ar-1",
            "album": "Test Album",
            "album_id": "al-1",
            "album_artist": "Test Artist",
            "duration_seconds": 180,
            "path": f"Test Artist/Test Album/{track_id}.flac",
            "suffix": "flac",
            "created_at": datetime(2024, 1, 1, tzinfo=UTC),
        }
        fields.update(overrides)
        return Track(id=track_id, **fields)

    return _make


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """Drop the stderr handler configure_logging installs (CLI and logging tests)."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            root.removeHandler(handler)
    root.setLevel(level)

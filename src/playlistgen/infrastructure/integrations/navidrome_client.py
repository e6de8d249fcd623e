"""Navidrome (Subsonic API) HTTP client."""

import hashlib
import logging
import secrets
from datetime import UTC, datetime
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from playlistgen.config import NavidromeSettings
from playlistgen.domain.entities import Track
from playlistgen.domain.exceptions import ConfigurationError, FetchError
from playlistgen.domain.ports import ICatalogClient

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound="_SubsonicEnvelope")


class _SubsonicModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SubsonicError(_SubsonicModel):
    code: int = 0
    message: str = ""


class _SubsonicEnvelope(_SubsonicModel):
    status: str = ""
    error: SubsonicError | None = None

    def validate_status(self) -> None:
        if self.error is not None:
            raise FetchError(
                f"subsonic error {self.error.code}: {self.error.message}"
            )
        if self.status.lower() != "ok":
            raise FetchError(f"subsonic status {self.status}")


class AlbumItem(_SubsonicModel):
    id: str


class SongItem(_SubsonicModel):
    """One `song` entry of getAlbum.view. Missing numbers come back as 0."""

    id: str
    title: str = ""
    artist: str = ""
    artist_id: str = Field(default="", alias="artistId")
    album: str = ""
    album_id: str = Field(default="", alias="albumId")
    album_artist: str = Field(default="", alias="albumArtist")
    genre: str = ""
    track: int = 0
    disc_number: int = Field(default=0, alias="discNumber")
    year: int = 0
    duration: int = 0
    bit_rate: int = Field(default=0, alias="bitRate")
    path: str = ""
    size: int = 0
    content_type: str = Field(default="", alias="contentType")
    suffix: str = ""
    created: str = ""


class _AlbumList(_SubsonicModel):
    album: list[AlbumItem] = Field(default_factory=list)


class AlbumListPayload(_SubsonicEnvelope):
    album_list: _AlbumList = Field(default_factory=_AlbumList, alias="albumList2")


class _AlbumSongs(_SubsonicModel):
    song: list[SongItem] = Field(default_factory=list)


class AlbumPayload(_SubsonicEnvelope):
    album: _AlbumSongs = Field(default_factory=_AlbumSongs)


def parse_subsonic_time(value: str) -> datetime | None:
    """Parse a Subsonic timestamp; offset-less values are UTC, junk is None."""
    value = value.strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("navidrome.bad_timestamp", extra={"value": value})
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _non_zero(value: int) -> int | None:
    return value if value != 0 else None


def _non_blank(value: str) -> str | None:
    return value if value.strip() else None


def song_to_track(song: SongItem) -> Track:
    """Map a Subsonic song to a Track. Zero / blank optionals become None."""
    return Track(
        id=song.id,
        title=song.title,
        artist=song.artist,
        artist_id=song.artist_id,
        album=song.album,
        album_id=song.album_id,
        album_artist=song.album_artist,
        genre=_non_blank(song.genre),
        year=_non_zero(song.year),
        track_number=_non_zero(song.track),
        disc_number=_non_zero(song.disc_number),
        duration_seconds=song.duration,
        bitrate=_non_zero(song.bit_rate),
        file_size=_non_zero(song.size),
        path=song.path,
        content_type=_non_blank(song.content_type),
        suffix=song.suffix,
        created_at=parse_subsonic_time(song.created),
    )


class NavidromeClient(ICatalogClient):
    """HTTP client listing every track of a Navidrome server."""

    API_VERSION = "1.16.1"
    CLIENT_NAME = "playlistgen"
    ALBUM_PAGE_SIZE = 200
    ALBUM_LIST_ENDPOINT = "rest/getAlbumList2.view"
    ALBUM_ENDPOINT = "rest/getAlbum.view"

    # Hey future me, Navidrome speaks the Subsonic API: no sessions, every request
    # carries u/t/s where t = md5(password + salt) and the salt is fresh per request.
    # Pass http_client in tests (httpx.MockTransport) - otherwise we create our own.
    def __init__(
        self,
        settings: NavidromeSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Navidrome client.

        Raises:
            ConfigurationError: base URL missing
        """
        if not settings.url.strip():
            raise ConfigurationError("navidrome base URL is required")
        self.settings = settings
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.url,
                headers={"Accept": "application/json"},
                timeout=self.settings.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client (only if we created it)."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "NavidromeClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _auth_params(self) -> dict[str, str]:
        if not self.settings.username.strip():
            return {}
        salt = secrets.token_hex(16)
        token = hashlib.md5(
            (self.settings.password + salt).encode(), usedforsecurity=False
        ).hexdigest()
        return {
            "u": self.settings.username,
            "t": token,
            "s": salt,
            "v": self.API_VERSION,
            "c": self.CLIENT_NAME,
            "f": "json",
        }

    async def _request(
        self, endpoint: str, params: dict[str, Any], model: type[ResponseT]
    ) -> ResponseT:
        client = await self._get_client()
        try:
            response = await client.get(
                endpoint, params={**self._auth_params(), **params}
            )
        except httpx.HTTPError as e:
            raise FetchError(f"request {endpoint}: {e}") from e

        if response.status_code != httpx.codes.OK:
            raise FetchError(f"unexpected status {response.status_code}")

        try:
            body = response.json()
            payload = model.model_validate(body["subsonic-response"])
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise FetchError(f"decode response: {e}") from e

        payload.validate_status()
        return payload

    async def list_tracks(self) -> list[Track]:
        """Walk every album page, then every album's songs."""
        tracks: list[Track] = []
        offset = 0

        while True:
            albums = await self._fetch_album_page(offset)
            if not albums:
                break
            for album in albums:
                tracks.extend(await self._fetch_album_songs(album.id))
            if len(albums) < self.ALBUM_PAGE_SIZE:
                break
            offset += len(albums)

        logger.debug("navidrome.tracks_listed", extra={"tracks": len(tracks)})
        return tracks

    async def _fetch_album_page(self, offset: int) -> list[AlbumItem]:
        payload = await self._request(
            self.ALBUM_LIST_ENDPOINT,
            {
                "type": "alphabeticalByName",
                "size": str(self.ALBUM_PAGE_SIZE),
                "offset": str(offset),
            },
            AlbumListPayload,
        )
        return payload.album_list.album

    async def _fetch_album_songs(self, album_id: str) -> list[Track]:
        payload = await self._request(self.ALBUM_ENDPOINT, {"id": album_id}, AlbumPayload)
        return [song_to_track(song) for song in payload.album.song]

"""Tests for the Navidrome (Subsonic API) client."""

import hashlib
from collections.abc import Callable
from datetime import UTC, datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from playlistgen.config import NavidromeSettings
from playlistgen.domain.exceptions import ConfigurationError, FetchError
from playlistgen.infrastructure.integrations import NavidromeClient
from playlistgen.infrastructure.integrations.navidrome_client import (
    SongItem,
    parse_subsonic_time,
    song_to_track,
)

BASE_URL = "http://navidrome.test"


def ok(payload: dict[str, Any]) -> httpx.Response:
    return httpx.Response(
        200,
        json={"subsonic-response": {"status": "ok", "version": "1.16.1", **payload}},
    )


def song(song_id: str, **fields: Any) -> dict[str, Any]:
    data = {
        "id": song_id,
        "title": f"Song {song_id}",
        "artist": "Artist",
        "album": "Album",
        "duration": 200,
        "path": f"Artist/Album/{song_id}.mp3",
        "suffix": "mp3",
    }
    data.update(fields)
    return data


@pytest.fixture
def navidrome_settings() -> NavidromeSettings:
    """Create Navidrome settings for testing."""
    return NavidromeSettings(url=BASE_URL, username="alice", password="s3cret")


@pytest.fixture
def make_client(
    navidrome_settings: NavidromeSettings,
) -> Callable[[Callable[[httpx.Request], httpx.Response]], NavidromeClient]:
    """Build a client whose HTTP layer is a MockTransport handler."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> NavidromeClient:
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url=BASE_URL
        )
        return NavidromeClient(navidrome_settings, http_client=http_client)

    return _make


class TestNavidromeClientInit:
    """Test client initialization."""

    def test_init_with_settings(self, navidrome_settings: NavidromeSettings) -> None:
        """Test client initialization with settings."""
        client = NavidromeClient(navidrome_settings)
        assert client.settings == navidrome_settings
        assert client.ALBUM_PAGE_SIZE == 200

    def test_missing_url_is_rejected(self) -> None:
        """Test that a blank base URL is a configuration error."""
        with pytest.raises(ConfigurationError):
            NavidromeClient(NavidromeSettings(url=" ", username="a", password="b"))

    async def test_close_leaves_injected_client_open(
        self, navidrome_settings: NavidromeSettings
    ) -> None:
        """Test that close() only closes a client we created."""
        http_client = httpx.AsyncClient(base_url=BASE_URL)
        client = NavidromeClient(navidrome_settings, http_client=http_client)

        await client.close()

        assert http_client.is_closed is False
        await http_client.aclose()


class TestListTracks:
    """Test catalog listing."""

    async def test_walks_album_pages_then_songs(self, make_client) -> None:
        """Test paging through albums until a short page."""
        offsets: list[str] = []
        albums = {"a1": [song("1"), song("2")], "a2": [song("3")], "a3": []}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/rest/getAlbumList2.view":
                offset = request.url.params["offset"]
                offsets.append(offset)
                assert request.url.params["type"] == "alphabeticalByName"
                page = {"0": ["a1", "a2"], "2": ["a3"]}[offset]
                return ok({"albumList2": {"album": [{"id": a} for a in page]}})
            if request.url.path == "/rest/getAlbum.view":
                album_id = request.url.params["id"]
                return ok({"album": {"id": album_id, "song": albums[album_id]}})
            return httpx.Response(404)

        client = make_client(handler)
        client.ALBUM_PAGE_SIZE = 2

        tracks = await client.list_tracks()

        assert offsets == ["0", "2"]
        assert [track.id for track in tracks] == ["1", "2", "3"]
        assert tracks[0].title == "Song 1"

    async def test_empty_library(self, make_client) -> None:
        """Test that a server without albums yields no tracks."""
        client = make_client(lambda request: ok({"albumList2": {}}))

        assert await client.list_tracks() == []

    async def test_sends_token_auth(self, make_client) -> None:
        """Test Subsonic salted-token authentication parameters."""
        seen: list[httpx.QueryParams] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.params)
            return ok({"albumList2": {"album": []}})

        await make_client(handler).list_tracks()

        params = seen[0]
        assert params["u"] == "alice"
        assert params["v"] == "1.16.1"
        assert params["c"] == "playlistgen"
        assert params["f"] == "json"
        assert params["t"] == hashlib.md5(
            ("s3cret" + params["s"]).encode()
        ).hexdigest()
        assert "p" not in params

    async def test_salt_changes_per_request(self, make_client) -> None:
        salts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            salts.append(request.url.params["s"])
            if request.url.path.endswith("getAlbumList2.view"):
                return ok({"albumList2": {"album": [{"id": "a1"}]}})
            return ok({"album": {"song": []}})

        await make_client(handler).list_tracks()

        assert len(salts) == 2
        assert salts[0] != salts[1]


class TestListTracksErrors:
    """Test error mapping to FetchError."""

    async def test_http_error_status(self, make_client) -> None:
        client = make_client(lambda request: httpx.Response(500, text="oops"))

        with pytest.raises(FetchError, match="unexpected status 500"):
            await client.list_tracks()

    async def test_subsonic_error_envelope(self, make_client) -> None:
        """Test that a failed envelope carries the Subsonic error."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "subsonic-response": {
                        "status": "failed",
                        "error": {"code": 40, "message": "Wrong username or password"},
                    }
                },
            )

        with pytest.raises(FetchError, match="40: Wrong username or password"):
            await make_client(handler).list_tracks()

    async def test_non_ok_status_without_error(self, make_client) -> None:
        client = make_client(
            lambda request: httpx.Response(
                200, json={"subsonic-response": {"status": "weird"}}
            )
        )

        with pytest.raises(FetchError, match="subsonic status weird"):
            await client.list_tracks()

    async def test_bad_json(self, make_client) -> None:
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(FetchError, match="decode response"):
            await client.list_tracks()

    async def test_missing_envelope(self, make_client) -> None:
        client = make_client(lambda request: httpx.Response(200, json={"foo": 1}))

        with pytest.raises(FetchError, match="decode response"):
            await client.list_tracks()

    async def test_transport_error(self, make_client) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError) as exc_info:
            await make_client(handler).list_tracks()

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    async def test_failure_on_album_request(self, make_client) -> None:
        """Test that a broken album page fails the whole listing."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("getAlbumList2.view"):
                return ok({"albumList2": {"album": [{"id": "a1"}]}})
            return httpx.Response(503)

        with pytest.raises(FetchError):
            await make_client(handler).list_tracks()


class TestSongMapping:
    """Test Subsonic song -> Track mapping."""

    def test_zero_and_blank_fields_become_none(self) -> None:
        track = song_to_track(
            SongItem.model_validate(
                song("1", year=0, track=0, discNumber=0, bitRate=0, size=0, genre="")
            )
        )

        assert track.year is None
        assert track.track_number is None
        assert track.disc_number is None
        assert track.bitrate is None
        assert track.file_size is None
        assert track.genre is None
        assert track.content_type is None
        assert track.created_at is None
        assert track.updated_at is None

    def test_reported_fields_are_kept(self) -> None:
        track = song_to_track(
            SongItem.model_validate(
                song(
                    "1",
                    artistId="ar-9",
                    albumId="al-9",
                    albumArtist="Various",
                    genre="Ambient",
                    year=1978,
                    track=2,
                    discNumber=1,
                    bitRate=320,
                    size=8_000_000,
                    contentType="audio/mpeg",
                    created="2024-03-01T10:20:30Z",
                )
            )
        )

        assert track.artist_id == "ar-9"
        assert track.album_id == "al-9"
        assert track.album_artist == "Various"
        assert track.genre == "Ambient"
        assert (track.year, track.track_number, track.disc_number) == (1978, 2, 1)
        assert (track.bitrate, track.file_size) == (320, 8_000_000)
        assert track.content_type == "audio/mpeg"
        assert track.duration_seconds == 200
        assert track.created_at == datetime(2024, 3, 1, 10, 20, 30, tzinfo=UTC)


class TestParseSubsonicTime:
    """Test timestamp parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2024-03-01T10:20:30Z", datetime(2024, 3, 1, 10, 20, 30, tzinfo=UTC)),
            (
                "2024-03-01T10:20:30.123456789Z",
                datetime(2024, 3, 1, 10, 20, 30, 123456, tzinfo=UTC),
            ),
            ("2024-03-01T10:20:30", datetime(2024, 3, 1, 10, 20, 30, tzinfo=UTC)),
            (
                "2024-03-01T12:20:30+02:00",
                datetime(2024, 3, 1, 12, 20, 30, tzinfo=timezone(timedelta(hours=2))),
            ),
        ],
    )
    def test_accepted_formats(self, value: str, expected: datetime) -> None:
        assert parse_subsonic_time(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", "yesterday"])
    def test_unparseable_is_none(self, value: str) -> None:
        assert parse_subsonic_time(value) is None

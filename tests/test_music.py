try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from fakes import make_store
from twitchfax import dependencies
from twitchfax.main import app
from twitchfax.services.broadcast import EventBroadcaster
from twitchfax.services.music import (
    UNKNOWN_ARTIST,
    UNKNOWN_TITLE,
    MusicController,
    MusicLibrary,
    MusicValidationError,
    PlaylistNotFoundError,
    TrackNotFoundError,
)


@pytest.fixture()
def library(tmp_path) -> MusicLibrary:
    return MusicLibrary(make_store(tmp_path), tmp_path / "music")


def test_upload_rejects_unsupported_files(library: MusicLibrary) -> None:
    with pytest.raises(MusicValidationError):
        library.add_track("song.flac", b"data")
    with pytest.raises(MusicValidationError):
        library.add_track("song.mp3", b"")


def test_track_without_tags_uses_placeholders(library: MusicLibrary) -> None:
    track = library.add_track("../../song.mp3", b"not really audio")

    assert track.title == UNKNOWN_TITLE
    assert track.artist == UNKNOWN_ARTIST
    assert track.has_artwork is False
    assert library.track_path(track.id).read_bytes() == b"not really audio"
    assert library.artwork_path(track.id) is None
    assert [t.id for t in library.list_tracks()] == [track.id]


def test_delete_track_removes_file(library: MusicLibrary) -> None:
    track = library.add_track("song.ogg", b"x")
    path = library.track_path(track.id)

    library.delete_track(track.id)

    assert not path.exists()
    with pytest.raises(TrackNotFoundError):
        library.get_track(track.id)


def test_playlist_ordering_and_membership(library: MusicLibrary) -> None:
    first = library.add_track("a.mp3", b"a")
    second = library.add_track("b.mp3", b"b")
    third = library.add_track("c.mp3", b"c")
    playlist = library.create_playlist("  Stream set  ", "evening")

    assert playlist.name == "Stream set"
    library.add_track_to_playlist(playlist.id, first.id)
    library.add_track_to_playlist(playlist.id, second.id)
    updated = library.add_track_to_playlist(playlist.id, third.id, position=0)

    assert [t.id for t in updated.tracks] == [third.id, first.id, second.id]
    with pytest.raises(MusicValidationError):
        library.add_track_to_playlist(playlist.id, first.id)

    after_remove = library.remove_track_from_playlist(playlist.id, third.id)
    assert [t.id for t in after_remove.tracks] == [first.id, second.id]

    library.delete_track(first.id)
    assert [t.id for t in library.get_playlist(playlist.id).tracks] == [second.id]


def test_playlist_names_are_unique(library: MusicLibrary) -> None:
    library.create_playlist("Chill")

    with pytest.raises(MusicValidationError):
        library.create_playlist("Chill")
    with pytest.raises(MusicValidationError):
        library.create_playlist("   ")


def test_playlist_update_and_delete(library: MusicLibrary) -> None:
    playlist = library.create_playlist("Old")

    renamed = library.update_playlist(playlist.id, name="New")
    assert renamed.name == "New"
    assert renamed.description == ""

    library.delete_playlist(playlist.id)
    with pytest.raises(PlaylistNotFoundError):
        library.get_playlist(playlist.id)


def test_playback_state_merges_known_keys(library: MusicLibrary) -> None:
    assert library.get_playback_state()["volume"] == 70

    state = library.save_playback_state({"volume": 40, "is_playing": True, "bogus": 1})
    state = library.save_playback_state({"position": 12.5})

    assert state["volume"] == 40
    assert state["is_playing"] is True
    assert state["position"] == 12.5
    assert "bogus" not in state
    assert state["updated_at"] is not None


def test_controller_validates_commands() -> None:
    control = EventBroadcaster("music-control")
    controller = MusicController(control, EventBroadcaster("music-status"))
    queue = control.subscribe()

    event = controller.send_command("volume", {"volume": 55})

    assert queue.get_nowait() == event
    assert event["command"] == "volume"
    for command, data in [
        ("volume", {"volume": 101}),
        ("volume", {"volume": "loud"}),
        ("seek", {"position": -1}),
        ("load", {}),
        ("rewind", {}),
    ]:
        with pytest.raises(MusicValidationError):
            controller.send_command(command, data)
    assert queue.empty()


def test_status_updates_are_remembered() -> None:
    status = EventBroadcaster("music-status")
    controller = MusicController(EventBroadcaster("music-control"), status)
    queue = status.subscribe()

    controller.update_status({"track_id": "t1", "is_playing": True})

    assert controller.last_status == {"track_id": "t1", "is_playing": True}
    assert queue.get_nowait() == {"type": "music_status", "data": {"track_id": "t1", "is_playing": True}}


@pytest.fixture()
def music_overrides(library: MusicLibrary):
    controller = MusicController(EventBroadcaster("music-control"), EventBroadcaster("music-status"))
    app.dependency_overrides.update(
        {
            dependencies.get_music_library: lambda: library,
            dependencies.get_music_controller: lambda: controller,
        }
    )
    yield library, controller
    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.anyio
async def test_upload_and_stream_track(music_overrides) -> None:
    async with _client() as client:
        uploaded = await client.post(
            "/api/music/upload", files={"file": ("tune.mp3", b"fake-mp3", "audio/mpeg")}
        )
        track_id = uploaded.json()["track"]["id"]
        audio = await client.get(f"/api/music/track/{track_id}/audio")
        artwork = await client.get(f"/api/music/track/{track_id}/artwork")
        rejected = await client.post(
            "/api/music/upload", files={"file": ("tune.txt", b"text", "text/plain")}
        )
        missing = await client.get("/api/music/track/nope")

    assert uploaded.status_code == 201
    assert audio.status_code == 200
    assert audio.headers["content-type"] == "audio/mpeg"
    assert audio.content == b"fake-mp3"
    assert artwork.status_code == 404
    assert rejected.status_code == 400
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_playlist_routes(music_overrides) -> None:
    library, _ = music_overrides
    track = library.add_track("a.mp3", b"a")

    async with _client() as client:
        created = await client.post("/api/music/playlists", json={"name": "Set"})
        playlist_id = created.json()["id"]
        added = await client.post(
            f"/api/music/playlist/{playlist_id}/tracks", json={"track_id": track.id}
        )
        unknown_track = await client.post(
            f"/api/music/playlist/{playlist_id}/tracks", json={"track_id": "nope"}
        )
        listing = await client.get("/api/music/playlists")

    assert created.status_code == 201
    assert added.json()["track_count"] == 1
    assert unknown_track.status_code == 404
    assert listing.json()["playlists"][0]["name"] == "Set"


@pytest.mark.anyio
async def test_control_route_rejects_bad_volume(music_overrides) -> None:
    async with _client() as client:
        ok = await client.post("/api/music/control/play")
        bad = await client.post("/api/music/control/volume", json={"volume": 150})

    assert ok.status_code == 200
    assert ok.json()["event"]["command"] == "play"
    assert bad.status_code == 400

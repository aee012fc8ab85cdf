"""
Music library for the overlay player.

Tracks are uploaded through the web UI and stored under the uploads
directory; their metadata, playlists and the last playback state live in the
shared SQLite database. Playback itself happens in the browser, so the
server only relays control commands and status updates between tabs.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import sqlite3
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import mutagen
from mutagen import MutagenError
from mutagen.flac import Picture

from twitchfax.clients.sqlite_store import SQLiteStore
from twitchfax.services.broadcast import EventBroadcaster

logger = logging.getLogger(__name__)

ALLOWED_AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".m4a", ".ogg"})
MAX_AUDIO_SIZE_BYTES = 50 * 1024 * 1024
UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ARTIST = "Unknown Artist"
AUDIO_MEDIA_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
}
DEFAULT_PLAYBACK_STATE: Dict[str, Any] = {
    "track_id": None,
    "playlist_id": None,
    "position": 0.0,
    "duration": 0.0,
    "volume": 70,
    "is_playing": False,
}


class MusicValidationError(ValueError):
    """Raised for rejected uploads and invalid playlist or control requests."""


class TrackNotFoundError(LookupError):
    pass


class PlaylistNotFoundError(LookupError):
    pass


@dataclass(slots=True)
class Track:
    id: str
    filename: str
    title: str
    artist: str
    album: str = ""
    duration: float = 0.0
    has_artwork: bool = False
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Playlist:
    id: str
    name: str
    description: str = ""
    created_at: Optional[str] = None
    tracks: list[Track] = field(default_factory=list)

    def to_dict(self, include_tracks: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
            "track_count": len(self.tracks),
        }
        if include_tracks:
            data["tracks"] = [track.to_dict() for track in self.tracks]
        return data


@dataclass(slots=True)
class AudioMetadata:
    title: str = UNKNOWN_TITLE
    artist: str = UNKNOWN_ARTIST
    album: str = ""
    duration: float = 0.0
    artwork: Optional[bytes] = None


def generate_id(name: str) -> str:
    return hashlib.sha256(f"{name}{time.time_ns()}".encode("utf-8")).hexdigest()[:16]


def _first_tag(tags: Any, key: str) -> str:
    if not tags:
        return ""
    values = tags.get(key)
    if not values:
        return ""
    value = values[0] if isinstance(values, list) else values
    return str(value).strip()


def _extract_artwork(audio: Any) -> Optional[bytes]:
    tags = getattr(audio, "tags", None)
    if tags is None:
        return None
    for key in list(tags.keys()):
        if str(key).startswith("APIC"):
            return tags[key].data
    covers = tags.get("covr") if hasattr(tags, "get") else None
    if covers:
        return bytes(covers[0])
    pictures = tags.get("metadata_block_picture") if hasattr(tags, "get") else None
    if pictures:
        try:
            return Picture(base64.b64decode(pictures[0])).data
        except (ValueError, MutagenError):
            return None
    return None


def read_metadata(path: Path) -> AudioMetadata:
    """Read title, artist, album, duration and cover art; never raises."""
    metadata = AudioMetadata()
    try:
        easy = mutagen.File(path, easy=True)
        full = mutagen.File(path)
    except (MutagenError, OSError, ValueError) as exc:
        logger.warning("Could not read audio metadata from %s: %s", path.name, exc)
        return metadata
    if easy is not None:
        metadata.title = _first_tag(easy.tags, "title") or UNKNOWN_TITLE
        metadata.artist = _first_tag(easy.tags, "artist") or UNKNOWN_ARTIST
        metadata.album = _first_tag(easy.tags, "album")
        if getattr(easy, "info", None) is not None:
            metadata.duration = float(getattr(easy.info, "length", 0.0) or 0.0)
    if full is not None:
        metadata.artwork = _extract_artwork(full)
    return metadata


def _row_to_track(row: sqlite3.Row) -> Track:
    return Track(
        id=row["id"],
        filename=row["filename"],
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        duration=float(row["duration"]),
        has_artwork=bool(row["has_artwork"]),
        created_at=row["created_at"],
    )


class MusicLibrary:
    """Tracks, playlists and persisted playback state."""

    def __init__(self, store: SQLiteStore, music_dir: Path) -> None:
        self._store = store
        self._tracks_dir = Path(music_dir)
        self._artwork_dir = self._tracks_dir / "artwork"
        self._tracks_dir.mkdir(parents=True, exist_ok=True)
        self._artwork_dir.mkdir(parents=True, exist_ok=True)

    # tracks

    def add_track(self, filename: str, data: bytes) -> Track:
        name = Path(filename or "").name
        extension = Path(name).suffix.lower()
        if extension not in ALLOWED_AUDIO_EXTENSIONS:
            raise MusicValidationError(
                f"Unsupported audio format; allowed: {', '.join(sorted(ALLOWED_AUDIO_EXTENSIONS))}"
            )
        if not data:
            raise MusicValidationError("Uploaded file is empty.")
        if len(data) > MAX_AUDIO_SIZE_BYTES:
            raise MusicValidationError("Audio file exceeds the 50MB limit.")

        track_id = generate_id(name)
        stored_name = f"{track_id}{extension}"
        path = self._tracks_dir / stored_name
        path.write_bytes(data)

        metadata = read_metadata(path)
        if metadata.artwork:
            (self._artwork_dir / f"{track_id}.jpg").write_bytes(metadata.artwork)

        with self._store.connect() as conn:
            conn.execute(
                """
                INSERT INTO tracks (id, filename, title, artist, album, duration, has_artwork)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    track_id,
                    stored_name,
                    metadata.title,
                    metadata.artist,
                    metadata.album,
                    metadata.duration,
                    int(metadata.artwork is not None),
                ),
            )
        logger.info("Added track %s: %s - %s", track_id, metadata.artist, metadata.title)
        return self.get_track(track_id)

    def list_tracks(self) -> list[Track]:
        with self._store.connect() as conn:
            rows = conn.execute("SELECT * FROM tracks ORDER BY created_at DESC, title").fetchall()
        return [_row_to_track(row) for row in rows]

    def get_track(self, track_id: str) -> Track:
        with self._store.connect() as conn:
            row = conn.execute("SELECT * FROM tracks WHERE id = ?", (track_id,)).fetchone()
        if row is None:
            raise TrackNotFoundError(track_id)
        return _row_to_track(row)

    def track_path(self, track_id: str) -> Path:
        return self._tracks_dir / self.get_track(track_id).filename

    def artwork_path(self, track_id: str) -> Optional[Path]:
        track = self.get_track(track_id)
        path = self._artwork_dir / f"{track.id}.jpg"
        if not track.has_artwork or not path.exists():
            return None
        return path

    def delete_track(self, track_id: str) -> None:
        track = self.get_track(track_id)
        with self._store.connect() as conn:
            conn.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
        (self._tracks_dir / track.filename).unlink(missing_ok=True)
        (self._artwork_dir / f"{track.id}.jpg").unlink(missing_ok=True)
        logger.info("Deleted track %s", track_id)

    def delete_all_tracks(self) -> int:
        tracks = self.list_tracks()
        for track in tracks:
            self.delete_track(track.id)
        return len(tracks)

    # playlists

    def create_playlist(self, name: str, description: str = "") -> Playlist:
        name = (name or "").strip()
        if not name:
            raise MusicValidationError("Playlist name is required.")
        playlist_id = generate_id(name)
        try:
            with self._store.connect() as conn:
                conn.execute(
                    "INSERT INTO playlists (id, name, description) VALUES (?, ?, ?)",
                    (playlist_id, name, description),
                )
        except sqlite3.IntegrityError as exc:
            raise MusicValidationError(f"A playlist named {name!r} already exists.") from exc
        return self.get_playlist(playlist_id)

    def list_playlists(self) -> list[Playlist]:
        with self._store.connect() as conn:
            rows = conn.execute("SELECT id FROM playlists ORDER BY name").fetchall()
        return [self.get_playlist(row["id"]) for row in rows]

    def get_playlist(self, playlist_id: str) -> Playlist:
        with self._store.connect() as conn:
            row = conn.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
            if row is None:
                raise PlaylistNotFoundError(playlist_id)
            track_rows = conn.execute(
                """
                SELECT t.* FROM playlist_tracks pt
                JOIN tracks t ON t.id = pt.track_id
                WHERE pt.playlist_id = ?
                ORDER BY pt.position
                """,
                (playlist_id,),
            ).fetchall()
        return Playlist(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_at=row["created_at"],
            tracks=[_row_to_track(track_row) for track_row in track_rows],
        )

    def update_playlist(
        self, playlist_id: str, *, name: Optional[str] = None, description: Optional[str] = None
    ) -> Playlist:
        playlist = self.get_playlist(playlist_id)
        new_name = playlist.name if name is None else name.strip()
        if not new_name:
            raise MusicValidationError("Playlist name is required.")
        new_description = playlist.description if description is None else description
        try:
            with self._store.connect() as conn:
                conn.execute(
                    "UPDATE playlists SET name = ?, description = ? WHERE id = ?",
                    (new_name, new_description, playlist_id),
                )
        except sqlite3.IntegrityError as exc:
            raise MusicValidationError(f"A playlist named {new_name!r} already exists.") from exc
        return self.get_playlist(playlist_id)

    def delete_playlist(self, playlist_id: str) -> None:
        self.get_playlist(playlist_id)
        with self._store.connect() as conn:
            conn.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))

    def add_track_to_playlist(
        self, playlist_id: str, track_id: str, position: Optional[int] = None
    ) -> Playlist:
        playlist = self.get_playlist(playlist_id)
        self.get_track(track_id)
        if any(track.id == track_id for track in playlist.tracks):
            raise MusicValidationError("Track is already in the playlist.")
        ordered = [track.id for track in playlist.tracks]
        index = len(ordered) if position is None else max(0, min(position, len(ordered)))
        ordered.insert(index, track_id)
        self._write_order(playlist_id, ordered)
        return self.get_playlist(playlist_id)

    def remove_track_from_playlist(self, playlist_id: str, track_id: str) -> Playlist:
        playlist = self.get_playlist(playlist_id)
        ordered = [track.id for track in playlist.tracks if track.id != track_id]
        if len(ordered) == len(playlist.tracks):
            raise TrackNotFoundError(track_id)
        self._write_order(playlist_id, ordered)
        return self.get_playlist(playlist_id)

    def _write_order(self, playlist_id: str, track_ids: list[str]) -> None:
        with self._store.connect() as conn:
            conn.execute("DELETE FROM playlist_tracks WHERE playlist_id = ?", (playlist_id,))
            conn.executemany(
                "INSERT INTO playlist_tracks (playlist_id, track_id, position) VALUES (?, ?, ?)",
                [(playlist_id, track_id, index) for index, track_id in enumerate(track_ids)],
            )

    # playback state

    def get_playback_state(self) -> Dict[str, Any]:
        with self._store.connect() as conn:
            row = conn.execute("SELECT data, updated_at FROM playback_state WHERE id = 1").fetchone()
        state = dict(DEFAULT_PLAYBACK_STATE)
        if row is not None:
            state.update(json.loads(row["data"]))
            state["updated_at"] = row["updated_at"]
        return state

    def save_playback_state(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        state = self.get_playback_state()
        state.pop("updated_at", None)
        state.update({key: value for key, value in changes.items() if key in DEFAULT_PLAYBACK_STATE})
        with self._store.connect() as conn:
            conn.execute(
                """
                INSERT INTO playback_state (id, data, updated_at) VALUES (1, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data, updated_at = CURRENT_TIMESTAMP
                """,
                (json.dumps(state),),
            )
        return self.get_playback_state()


CONTROL_COMMANDS = frozenset(
    {"play", "pause", "stop", "toggle", "next", "previous", "volume", "seek", "load"}
)


class MusicController:
    """Relay player commands and status between the UI and overlay tabs."""

    def __init__(self, control: EventBroadcaster, status: EventBroadcaster) -> None:
        self._control = control
        self._status = status
        self._last_status: Dict[str, Any] = {}

    @property
    def last_status(self) -> Dict[str, Any]:
        return dict(self._last_status)

    def send_command(self, command: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if command not in CONTROL_COMMANDS:
            raise MusicValidationError(f"Unknown music command {command!r}.")
        payload = dict(data or {})
        if command == "volume":
            volume = payload.get("volume")
            if not isinstance(volume, (int, float)) or not 0 <= volume <= 100:
                raise MusicValidationError("volume must be a number between 0 and 100.")
        elif command == "seek":
            position = payload.get("position")
            if not isinstance(position, (int, float)) or position < 0:
                raise MusicValidationError("position must be a non-negative number.")
        elif command == "load" and not (payload.get("track_id") or payload.get("playlist_id")):
            raise MusicValidationError("load requires track_id or playlist_id.")

        event = {
            "type": "music_control",
            "command": command,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        delivered = self._control.publish(event)
        logger.debug("Music command %s delivered to %d clients", command, delivered)
        return event

    def update_status(self, status: Dict[str, Any]) -> Dict[str, Any]:
        self._last_status = dict(status)
        event = {"type": "music_status", "data": self._last_status}
        self._status.publish(event)
        return event


__all__ = [
    "ALLOWED_AUDIO_EXTENSIONS",
    "AUDIO_MEDIA_TYPES",
    "CONTROL_COMMANDS",
    "DEFAULT_PLAYBACK_STATE",
    "MusicController",
    "MusicLibrary",
    "MusicValidationError",
    "Playlist",
    "PlaylistNotFoundError",
    "Track",
    "TrackNotFoundError",
    "read_metadata",
]

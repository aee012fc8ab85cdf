"""
Music library and player relay routes.

The browser overlay plays the audio; these routes only store tracks and
playlists and forward control commands and status between tabs over SSE.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, StreamingResponse

from twitchfax.api.sse import sse_response
from twitchfax.api.uploads import read_upload
from twitchfax.dependencies import (
    get_music_control_broadcaster,
    get_music_controller,
    get_music_library,
    get_music_status_broadcaster,
)
from twitchfax.schemas import PlaylistCreateRequest, PlaylistTrackRequest, PlaylistUpdateRequest
from twitchfax.services.music import (
    AUDIO_MEDIA_TYPES,
    MAX_AUDIO_SIZE_BYTES,
    MusicValidationError,
    PlaylistNotFoundError,
    TrackNotFoundError,
)

router = APIRouter(prefix="/music")
logger = logging.getLogger(__name__)


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))


def _track_not_found(track_id: str) -> HTTPException:
    return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=f"Track {track_id} not found.")


def _playlist_not_found(playlist_id: str) -> HTTPException:
    return HTTPException(
        status_code=HTTPStatus.NOT_FOUND, detail=f"Playlist {playlist_id} not found."
    )


@router.post("/upload", status_code=HTTPStatus.CREATED)
async def upload_track(
    library: Annotated[Any, Depends(get_music_library)],
    file: UploadFile = File(..., description="MP3, WAV, M4A or OGG file."),
) -> dict:
    data = await read_upload(
        file, MAX_AUDIO_SIZE_BYTES, too_large="Audio file exceeds the 50MB limit."
    )
    try:
        track = library.add_track(file.filename or "", data)
    except MusicValidationError as exc:
        raise _bad_request(exc) from exc
    return {"success": True, "track": track.to_dict()}


@router.get("/tracks", status_code=HTTPStatus.OK)
async def list_tracks(library: Annotated[Any, Depends(get_music_library)]) -> dict:
    tracks = [track.to_dict() for track in library.list_tracks()]
    return {"tracks": tracks, "count": len(tracks)}


@router.delete("/tracks", status_code=HTTPStatus.OK)
async def delete_all_tracks(library: Annotated[Any, Depends(get_music_library)]) -> dict:
    return {"success": True, "deleted": library.delete_all_tracks()}


@router.get("/track/{track_id}", status_code=HTTPStatus.OK)
async def get_track(track_id: str, library: Annotated[Any, Depends(get_music_library)]) -> dict:
    try:
        return library.get_track(track_id).to_dict()
    except TrackNotFoundError as exc:
        raise _track_not_found(track_id) from exc


@router.delete("/track/{track_id}", status_code=HTTPStatus.OK)
async def delete_track(track_id: str, library: Annotated[Any, Depends(get_music_library)]) -> dict:
    try:
        library.delete_track(track_id)
    except TrackNotFoundError as exc:
        raise _track_not_found(track_id) from exc
    return {"success": True}


@router.get("/track/{track_id}/audio")
async def get_track_audio(
    track_id: str, library: Annotated[Any, Depends(get_music_library)]
) -> FileResponse:
    try:
        path = library.track_path(track_id)
    except TrackNotFoundError as exc:
        raise _track_not_found(track_id) from exc
    if not path.exists():
        raise _track_not_found(track_id)
    media_type = AUDIO_MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")
    return FileResponse(path, media_type=media_type)


@router.get("/track/{track_id}/artwork")
async def get_track_artwork(
    track_id: str, library: Annotated[Any, Depends(get_music_library)]
) -> FileResponse:
    try:
        path = library.artwork_path(track_id)
    except TrackNotFoundError as exc:
        raise _track_not_found(track_id) from exc
    if path is None:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Track has no artwork.")
    return FileResponse(path, media_type="image/jpeg")


@router.get("/playlists", status_code=HTTPStatus.OK)
async def list_playlists(library: Annotated[Any, Depends(get_music_library)]) -> dict:
    return {"playlists": [playlist.to_dict() for playlist in library.list_playlists()]}


@router.post("/playlists", status_code=HTTPStatus.CREATED)
async def create_playlist(
    payload: PlaylistCreateRequest, library: Annotated[Any, Depends(get_music_library)]
) -> dict:
    try:
        playlist = library.create_playlist(payload.name, payload.description)
    except MusicValidationError as exc:
        raise _bad_request(exc) from exc
    return playlist.to_dict(include_tracks=True)


@router.get("/playlist/{playlist_id}", status_code=HTTPStatus.OK)
async def get_playlist(
    playlist_id: str, library: Annotated[Any, Depends(get_music_library)]
) -> dict:
    try:
        return library.get_playlist(playlist_id).to_dict(include_tracks=True)
    except PlaylistNotFoundError as exc:
        raise _playlist_not_found(playlist_id) from exc


@router.put("/playlist/{playlist_id}", status_code=HTTPStatus.OK)
async def update_playlist(
    playlist_id: str,
    payload: PlaylistUpdateRequest,
    library: Annotated[Any, Depends(get_music_library)],
) -> dict:
    try:
        playlist = library.update_playlist(
            playlist_id, name=payload.name, description=payload.description
        )
    except PlaylistNotFoundError as exc:
        raise _playlist_not_found(playlist_id) from exc
    except MusicValidationError as exc:
        raise _bad_request(exc) from exc
    return playlist.to_dict(include_tracks=True)


@router.delete("/playlist/{playlist_id}", status_code=HTTPStatus.OK)
async def delete_playlist(
    playlist_id: str, library: Annotated[Any, Depends(get_music_library)]
) -> dict:
    try:
        library.delete_playlist(playlist_id)
    except PlaylistNotFoundError as exc:
        raise _playlist_not_found(playlist_id) from exc
    return {"success": True}


@router.post("/playlist/{playlist_id}/tracks", status_code=HTTPStatus.OK)
async def add_playlist_track(
    playlist_id: str,
    payload: PlaylistTrackRequest,
    library: Annotated[Any, Depends(get_music_library)],
) -> dict:
    try:
        playlist = library.add_track_to_playlist(playlist_id, payload.track_id, payload.position)
    except PlaylistNotFoundError as exc:
        raise _playlist_not_found(playlist_id) from exc
    except TrackNotFoundError as exc:
        raise _track_not_found(payload.track_id) from exc
    except MusicValidationError as exc:
        raise _bad_request(exc) from exc
    return playlist.to_dict(include_tracks=True)


@router.delete("/playlist/{playlist_id}/tracks/{track_id}", status_code=HTTPStatus.OK)
async def remove_playlist_track(
    playlist_id: str,
    track_id: str,
    library: Annotated[Any, Depends(get_music_library)],
) -> dict:
    try:
        playlist = library.remove_track_from_playlist(playlist_id, track_id)
    except PlaylistNotFoundError as exc:
        raise _playlist_not_found(playlist_id) from exc
    except TrackNotFoundError as exc:
        raise _track_not_found(track_id) from exc
    return playlist.to_dict(include_tracks=True)


@router.get("/control/events")
async def music_control_events(
    request: Request,
    broadcaster: Annotated[Any, Depends(get_music_control_broadcaster)],
) -> StreamingResponse:
    return sse_response(request, broadcaster, initial={"type": "connected"})


@router.post("/control/{command}", status_code=HTTPStatus.OK)
async def send_music_command(
    command: str,
    controller: Annotated[Any, Depends(get_music_controller)],
    payload: Optional[Dict[str, Any]] = Body(default=None),
) -> dict:
    """Forward a player command (play, pause, volume, seek, load...) to the overlay."""
    try:
        event = controller.send_command(command, payload or {})
    except MusicValidationError as exc:
        raise _bad_request(exc) from exc
    return {"success": True, "event": event}


@router.post("/status/update", status_code=HTTPStatus.OK)
async def update_music_status(
    controller: Annotated[Any, Depends(get_music_controller)],
    payload: Dict[str, Any] = Body(...),
) -> dict:
    controller.update_status(payload)
    return {"success": True}


@router.get("/status/events")
async def music_status_events(
    request: Request,
    broadcaster: Annotated[Any, Depends(get_music_status_broadcaster)],
    controller: Annotated[Any, Depends(get_music_controller)],
) -> StreamingResponse:
    initial = {"type": "music_status", "data": controller.last_status}
    return sse_response(request, broadcaster, initial=initial)


@router.post("/state/update", status_code=HTTPStatus.OK)
async def update_playback_state(
    library: Annotated[Any, Depends(get_music_library)],
    payload: Dict[str, Any] = Body(...),
) -> dict:
    return {"success": True, "state": library.save_playback_state(payload)}


@router.get("/state/get", status_code=HTTPStatus.OK)
async def get_playback_state(library: Annotated[Any, Depends(get_music_library)]) -> dict:
    return library.get_playback_state()


__all__ = ["router"]

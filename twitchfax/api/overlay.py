"""
Routes served at the site root: the Twitch OAuth flow, the overlay event
stream, rendered fax images, a status summary and the debug event triggers.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, Callable, Dict, Tuple

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, StreamingResponse

from twitchfax.api.sse import sse_response
from twitchfax.clients.twitch_auth import OAuthTokenExchangeError
from twitchfax.dependencies import (
    get_app_settings,
    get_clock_printer,
    get_event_dispatcher,
    get_fax_store,
    get_oauth_state_encoder,
    get_overlay_broadcaster,
    get_printer_status,
    get_settings_manager,
    get_stream_status,
    get_token_service,
    get_twitch_oauth_client,
)
from twitchfax.schemas import DebugEventRequest
from twitchfax.services.fax_store import IMAGE_TYPES
from twitchfax.services.fonts import FontNotConfiguredError

router = APIRouter()
logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


@router.get("/auth", status_code=HTTPStatus.OK)
async def start_twitch_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_twitch_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Twitch consent screen.",
    ),
) -> Response:
    """Generate a signed state token and the Twitch authorization URL."""
    if not settings_manager.get("CLIENT_ID"):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="CLIENT_ID is not configured; set it in the settings first.",
        )

    state = state_encoder.encode(
        {"nonce": uuid.uuid4().hex, "issued_at": datetime.now(timezone.utc).isoformat()}
    )
    authorization_url = oauth_client.build_authorization_url(state=state)

    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return JSONResponse(content={"authorization_url": authorization_url, "state": state})


@router.get("/callback", status_code=HTTPStatus.OK)
async def handle_twitch_oauth_callback(
    request: Request,
    token_service: Annotated[Any, Depends(get_token_service)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: str | None = Query(default=None, description="Authorization code from Twitch."),
    state: str | None = Query(default=None, description="OAuth state token."),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
) -> Response:
    """Exchange the authorization code and store the resulting token."""
    if error:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"Twitch authorization failed: {error_description or error}",
        )
    if not code:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="Missing authorization code.")
    if not state:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="Missing OAuth state.")

    state_data = state_encoder.decode(state)
    issued_at_raw = state_data.get("issued_at")
    if not issued_at_raw:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Missing issued_at in state token."
        )
    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Invalid issued_at in state token."
        ) from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    if datetime.now(timezone.utc) - issued_at > timedelta(seconds=settings.oauth.state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    try:
        token = await token_service.exchange_code(code)
    except OAuthTokenExchangeError as exc:
        logger.warning("Twitch code exchange failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail="Could not reach the Twitch identity service.",
        ) from exc

    logger.info("Twitch authentication completed")
    if _wants_html(request):
        return RedirectResponse(url="/", status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return JSONResponse(
        content={"status": "connected", "expires_at": token.expires_at, "scope": token.scope}
    )


@router.get("/events")
async def overlay_events(
    request: Request,
    broadcaster: Annotated[Any, Depends(get_overlay_broadcaster)],
    printer_status: Annotated[Any, Depends(get_printer_status)],
) -> StreamingResponse:
    """Server-sent stream of faxes and status changes for the overlay."""
    initial = {"type": "connected", "data": {"printerConnected": printer_status.connected}}
    return sse_response(request, broadcaster, initial=initial)


@router.get("/fax/{fax_id}/{image_type}")
async def get_fax_image(
    fax_id: str,
    image_type: str,
    fax_store: Annotated[Any, Depends(get_fax_store)],
) -> FileResponse:
    if image_type not in IMAGE_TYPES:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"image type must be one of: {', '.join(IMAGE_TYPES)}",
        )
    path = fax_store.get_image_path(fax_id, image_type)
    if path is None or not path.exists():
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Fax not found or expired.")
    return FileResponse(
        path,
        media_type="image/png",
        headers={"Cache-Control": "public, max-age=600"},
    )


@router.get("/status", status_code=HTTPStatus.OK)
async def get_status(
    printer_status: Annotated[Any, Depends(get_printer_status)],
    stream_status: Annotated[Any, Depends(get_stream_status)],
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
) -> dict:
    return {
        "printerConnected": printer_status.connected,
        "printer": printer_status.snapshot(),
        "stream": stream_status.snapshot(),
        "dryRun": settings_manager.get_bool("DRY_RUN_MODE"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _debug_follow(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {"user_id": "debug", "user_login": body.username.lower(), "user_name": body.username}


def _debug_cheer(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {
        "user_id": "debug",
        "user_name": body.username,
        "bits": body.amount or 100,
        "message": body.message,
    }


def _debug_raid(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {
        "from_broadcaster_user_id": "debug",
        "from_broadcaster_user_name": body.username,
        "viewers": body.amount,
    }


def _debug_subscribe(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {"user_id": "debug", "user_name": body.username, "tier": "1000", "is_gift": False}


def _debug_gift(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {"user_id": "debug", "user_name": body.username, "total": body.amount or 1}


def _debug_resub(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {
        "user_id": "debug",
        "user_name": body.username,
        "cumulative_months": body.amount,
        "message": {"text": body.message},
    }


def _debug_shoutout(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {
        "from_broadcaster_user_id": "debug",
        "from_broadcaster_user_name": body.username,
        "viewer_count": body.amount,
    }


def _debug_redemption(body: DebugEventRequest, settings_manager: Any) -> Dict[str, Any]:
    reward_id = body.reward_id or settings_manager.get("TRIGGER_CUSTOM_REWORD_ID") or "debug"
    return {
        "user_id": "debug",
        "user_name": body.username,
        "user_input": body.message,
        "reward": {"id": reward_id, "title": "Debug reward"},
    }


def _debug_stream_online(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {
        "broadcaster_user_name": body.username,
        "started_at": datetime.now(timezone.utc).isoformat(),
    }


def _debug_stream_offline(body: DebugEventRequest, _: Any) -> Dict[str, Any]:
    return {"broadcaster_user_name": body.username}


DEBUG_EVENTS: Dict[str, Tuple[str, Callable[[DebugEventRequest, Any], Dict[str, Any]]]] = {
    "follow": ("channel.follow", _debug_follow),
    "cheer": ("channel.cheer", _debug_cheer),
    "raid": ("channel.raid", _debug_raid),
    "subscribe": ("channel.subscribe", _debug_subscribe),
    "gift": ("channel.subscription.gift", _debug_gift),
    "resub": ("channel.subscription.message", _debug_resub),
    "shoutout": ("channel.shoutout.receive", _debug_shoutout),
    "redemption": ("channel.channel_points_custom_reward_redemption.add", _debug_redemption),
    "stream-online": ("stream.online", _debug_stream_online),
    "stream-offline": ("stream.offline", _debug_stream_offline),
}


@router.post("/debug/clock", status_code=HTTPStatus.OK)
async def trigger_debug_clock(
    settings: Annotated[Any, Depends(get_app_settings)],
    clock: Annotated[Any, Depends(get_clock_printer)],
) -> dict:
    """Print the clock card right away."""
    if not settings.server.debug_mode:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Not Found")
    try:
        fax = await clock.print_now()
    except FontNotConfiguredError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    logger.info("Debug clock card printed as fax %s", fax.id)
    return {"status": "ok", "type": "clock", "faxId": fax.id}


@router.post("/debug/{event_kind}", status_code=HTTPStatus.OK)
async def trigger_debug_event(
    event_kind: str,
    settings: Annotated[Any, Depends(get_app_settings)],
    dispatcher: Annotated[Any, Depends(get_event_dispatcher)],
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
    body: DebugEventRequest | None = None,
) -> dict:
    """Feed a synthetic notification through the normal event handlers."""
    if not settings.server.debug_mode:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Not Found")
    entry = DEBUG_EVENTS.get(event_kind)
    if entry is None:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND,
            detail=f"Unknown debug event {event_kind!r}; expected one of: {', '.join(DEBUG_EVENTS)}",
        )
    subscription_type, build_payload = entry
    payload = build_payload(body or DebugEventRequest(), settings_manager)
    logger.info("Debug event %s for %s", subscription_type, payload)
    handled = await dispatcher.dispatch(subscription_type, payload)
    return {"status": "ok", "type": subscription_type, "handled": handled}


__all__ = ["DEBUG_EVENTS", "router"]

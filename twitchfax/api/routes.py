"""
REST routes for the settings UI: settings, font, printer, stream and logs.
"""

from __future__ import annotations

import base64
import io
import json
import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any, Dict, Optional

import httpx
from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import PlainTextResponse

from twitchfax.clients.helix import HelixAPIError
from twitchfax.clients.twitch_auth import OAuthTokenExchangeError, OAuthTokenNotFoundError
from twitchfax.dependencies import (
    get_fax_renderer,
    get_font_manager,
    get_log_buffer,
    get_overlay_broadcaster,
    get_printer_service,
    get_printer_status,
    get_settings_manager,
    get_stream_status,
    get_token_service,
    get_twitch_api_client,
)
from twitchfax.api.uploads import read_upload
from twitchfax.schemas import FontPreviewRequest, PrinterTestRequest
from twitchfax.services.fonts import (
    MAX_FONT_SIZE_BYTES,
    FontNotConfiguredError,
    FontValidationError,
)
from twitchfax.services.settings import SettingType, SettingValidationError, validate_setting

router = APIRouter()
logger = logging.getLogger(__name__)

MASKED_VALUE = "********"


def _setting_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def _masked_settings(settings_manager: Any) -> Dict[str, Dict[str, Any]]:
    settings = settings_manager.get_all()
    for entry in settings.values():
        if entry["type"] == SettingType.SECRET.value and entry["has_value"]:
            entry["value"] = MASKED_VALUE
    return settings


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/settings/v2", status_code=HTTPStatus.OK)
async def get_settings_v2(
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
    printer_status: Annotated[Any, Depends(get_printer_status)],
    font_manager: Annotated[Any, Depends(get_font_manager)],
) -> dict:
    """Return every setting (secrets masked), the feature status and the font."""
    return {
        "settings": _masked_settings(settings_manager),
        "status": settings_manager.feature_status(printer_connected=printer_status.connected),
        "font": font_manager.info(),
    }


@router.put("/settings/v2", status_code=HTTPStatus.OK)
async def update_settings_v2(
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
    printer_status: Annotated[Any, Depends(get_printer_status)],
    broadcaster: Annotated[Any, Depends(get_overlay_broadcaster)],
    payload: Dict[str, Any] = Body(..., description="Map of setting keys to new values."),
) -> dict:
    """Validate and store a batch of settings. Nothing is written if any value is invalid."""
    # Masked secrets come back unchanged from the UI; keep the stored value.
    values = {
        key: _setting_value(value)
        for key, value in payload.items()
        if _setting_value(value) != MASKED_VALUE
    }
    if not values:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="No settings provided.")

    try:
        settings_manager.update_many(values)
    except SettingValidationError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail={"key": exc.key, "message": exc.message},
        ) from exc

    updated = sorted(values)
    broadcaster.publish({"type": "settings_updated", "data": {"keys": updated}})
    return {
        "success": True,
        "updated": updated,
        "status": settings_manager.feature_status(printer_connected=printer_status.connected),
    }


@router.get("/settings/status", status_code=HTTPStatus.OK)
async def get_settings_status(
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
    printer_status: Annotated[Any, Depends(get_printer_status)],
) -> dict:
    return settings_manager.feature_status(printer_connected=printer_status.connected)


@router.post("/settings/reset", status_code=HTTPStatus.OK)
async def reset_settings(
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
    include_secrets: bool = Query(
        default=False, description="Also clear Twitch credentials and reward id."
    ),
) -> dict:
    reset = settings_manager.reset_to_defaults(include_secrets=include_secrets)
    logger.info("Settings reset to defaults (%d keys)", len(reset))
    return {"success": True, "reset": reset}


@router.get("/settings/font", status_code=HTTPStatus.OK)
async def get_font_info(font_manager: Annotated[Any, Depends(get_font_manager)]) -> dict:
    return font_manager.info()


@router.post("/settings/font", status_code=HTTPStatus.OK)
async def upload_font(
    font_manager: Annotated[Any, Depends(get_font_manager)],
    font: UploadFile = File(..., description="TrueType or OpenType font file."),
) -> dict:
    data = await read_upload(
        font, MAX_FONT_SIZE_BYTES, too_large="Font file exceeds the 50MB limit."
    )
    try:
        info = font_manager.save(font.filename or "", data)
    except FontValidationError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    return {"success": True, "font": info}


@router.delete("/settings/font", status_code=HTTPStatus.OK)
async def delete_font(font_manager: Annotated[Any, Depends(get_font_manager)]) -> dict:
    return {"success": font_manager.delete(), "font": font_manager.info()}


@router.post("/settings/font/preview", status_code=HTTPStatus.OK)
async def preview_font(
    renderer: Annotated[Any, Depends(get_fax_renderer)],
    payload: Optional[FontPreviewRequest] = None,
) -> dict:
    """Render sample text with the current font and return it as a data URL."""
    text = (payload or FontPreviewRequest()).text
    try:
        image = renderer.render_preview(text)
    except FontNotConfiguredError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return {"image": f"data:image/png;base64,{encoded}"}


@router.get("/settings/auth/status", status_code=HTTPStatus.OK)
async def get_auth_status(token_service: Annotated[Any, Depends(get_token_service)]) -> dict:
    token, valid = token_service.get_latest_token()
    return {
        "authenticated": valid,
        "has_refresh_token": bool(token.refresh_token),
        "expires_at": token.expires_at or None,
        "scope": token.scope,
        "auth_url": "/auth",
    }


@router.post("/printer/scan", status_code=HTTPStatus.OK)
async def scan_printers(
    printer: Annotated[Any, Depends(get_printer_service)],
    timeout: float = Query(default=10.0, gt=0, le=60),
    all_devices: bool = Query(
        default=False, description="List every Bluetooth device, not only known printers."
    ),
) -> dict:
    try:
        devices = await printer.scan(timeout, all_devices=all_devices)
    except Exception as exc:
        logger.exception("Bluetooth scan failed")
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail=f"Bluetooth scan failed: {exc}",
        ) from exc
    return {"devices": devices}


@router.post("/printer/test", status_code=HTTPStatus.OK)
async def test_printer(
    payload: PrinterTestRequest,
    printer: Annotated[Any, Depends(get_printer_service)],
) -> dict:
    try:
        validate_setting("PRINTER_ADDRESS", payload.address)
    except SettingValidationError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=exc.message) from exc
    if not payload.address:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="address is required.")
    return await printer.test_connection(payload.address)


@router.get("/printer/status", status_code=HTTPStatus.OK)
async def get_printer_status_route(
    printer_status: Annotated[Any, Depends(get_printer_status)],
    printer: Annotated[Any, Depends(get_printer_service)],
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
) -> dict:
    snapshot = printer_status.snapshot()
    snapshot.update(
        {
            "configured_address": settings_manager.get("PRINTER_ADDRESS"),
            "dry_run": settings_manager.get_bool("DRY_RUN_MODE"),
            "pending_jobs": printer.pending_jobs,
        }
    )
    return snapshot


@router.post("/printer/reconnect", status_code=HTTPStatus.OK)
async def reconnect_printer(
    printer: Annotated[Any, Depends(get_printer_service)],
    settings_manager: Annotated[Any, Depends(get_settings_manager)],
) -> dict:
    if not settings_manager.get("PRINTER_ADDRESS"):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="No printer address configured."
        )
    try:
        await printer.reconnect()
    except Exception as exc:
        logger.warning("Manual printer reconnect failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail=f"Printer reconnect failed: {exc}",
        ) from exc
    return {"success": True, "connected": printer.connected}


@router.get("/stream/status", status_code=HTTPStatus.OK)
async def get_stream_status_route(
    stream_status: Annotated[Any, Depends(get_stream_status)],
) -> dict:
    return stream_status.snapshot()


@router.get("/twitch/verify", status_code=HTTPStatus.OK)
async def verify_twitch_connection(
    api_client: Annotated[Any, Depends(get_twitch_api_client)],
) -> dict:
    """Call the Helix users endpoint with the stored token."""
    try:
        user = await api_client.get_user()
    except (OAuthTokenNotFoundError, OAuthTokenExchangeError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED, detail="Twitch account not connected."
        ) from exc
    except (HelixAPIError, httpx.HTTPError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY, detail=f"Twitch API request failed: {exc}"
        ) from exc
    return {
        "valid": True,
        "user": {
            "id": user.get("id"),
            "login": user.get("login"),
            "display_name": user.get("display_name"),
        },
    }


@router.get("/logs", status_code=HTTPStatus.OK)
async def get_logs(
    log_buffer: Annotated[Any, Depends(get_log_buffer)],
    limit: int = Query(default=100, ge=1, le=1000),
) -> dict:
    entries = log_buffer.get_recent(limit)
    return {"logs": entries, "count": len(entries)}


@router.get("/logs/download")
async def download_logs(
    log_buffer: Annotated[Any, Depends(get_log_buffer)],
    format: str = Query(default="text", pattern="^(text|json)$"),
) -> PlainTextResponse:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    if format == "json":
        body = json.dumps(log_buffer.get_all(), indent=2)
        filename = f"twitch-overlay-logs-{stamp}.json"
        media_type = "application/json"
    else:
        body = log_buffer.to_text()
        filename = f"twitch-overlay-logs-{stamp}.txt"
        media_type = "text/plain"
    return PlainTextResponse(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/logs/clear", status_code=HTTPStatus.OK)
async def clear_logs(log_buffer: Annotated[Any, Depends(get_log_buffer)]) -> dict:
    log_buffer.clear()
    return {"success": True}


__all__ = ["MASKED_VALUE", "router"]

"""
Background lifecycle of the service.

Startup order matters: settings are seeded first, then the service waits for a
custom font (nothing can be rendered without one), starts the printer and the
clock, and finally waits for a Twitch token before opening EventSub.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Coroutine, Optional

import httpx

from twitchfax.clients.eventsub import EventSubSession
from twitchfax.clients.helix import HelixAPIError
from twitchfax.clients.twitch_auth import OAuthTokenExchangeError, OAuthTokenNotFoundError
from twitchfax.core.config import AppSettings
from twitchfax.core.paths import ensure_data_dirs
from twitchfax.dependencies import (
    get_app_settings,
    get_clock_printer,
    get_eventsub_session,
    get_font_manager,
    get_printer_service,
    get_settings_manager,
    get_stream_status,
    get_token_service,
    get_twitch_api_client,
)

logger = logging.getLogger(__name__)

_BANNER = "=" * 60


class OverlayRuntime:
    """Own the long-running tasks started with the web server."""

    STREAM_POLL_SECONDS = 60.0

    def __init__(
        self,
        *,
        settings: AppSettings,
        settings_manager: Any,
        font_manager: Any,
        token_service: Any,
        printer: Any,
        clock: Any,
        stream_status: Any,
        api_client: Any,
        session_factory: Callable[[], EventSubSession],
    ) -> None:
        self._settings = settings
        self._settings_manager = settings_manager
        self._fonts = font_manager
        self._tokens = token_service
        self._printer = printer
        self._clock = clock
        self._stream_status = stream_status
        self._api = api_client
        self._session_factory = session_factory
        self._session: Optional[EventSubSession] = None
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_dependencies(cls) -> "OverlayRuntime":
        return cls(
            settings=get_app_settings(),
            settings_manager=get_settings_manager(),
            font_manager=get_font_manager(),
            token_service=get_token_service(),
            printer=get_printer_service(),
            clock=get_clock_printer(),
            stream_status=get_stream_status(),
            api_client=get_twitch_api_client(),
            session_factory=get_eventsub_session,
        )

    @property
    def auth_url(self) -> str:
        return f"http://localhost:{self._settings.server.port}/auth"

    def prepare(self) -> None:
        """Create data directories and seed the settings table."""
        ensure_data_dirs(self._settings.storage)
        self._settings_manager.migrate_from_env()
        inserted = self._settings_manager.initialize_defaults()
        if inserted:
            logger.info("Initialized %d default settings", len(inserted))
        if self._settings_manager.get_bool("DEBUG_OUTPUT"):
            logging.getLogger().setLevel(logging.DEBUG)
            logger.debug("Debug output enabled")
        missing = self._settings_manager.missing_required()
        if missing:
            logger.warning("Missing required settings: %s", ", ".join(missing))

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.append(task)
        return task

    async def start(self) -> None:
        self.prepare()
        self._spawn(self._run(), "startup")

    async def _run(self) -> None:
        await self._wait_for_font()

        self._spawn(self._printer.run_worker(), "print-worker")
        await self._connect_printer()
        self._spawn(self._printer.keep_alive_loop(), "printer-keep-alive")
        self._spawn(self._clock.run(), "clock")
        if self._settings_manager.get_bool("INITIAL_PRINT_ENABLED"):
            try:
                await self._clock.print_initial_clock()
            except Exception:
                logger.exception("Initial clock print failed")

        await self._wait_for_token()
        self._spawn(self._tokens.refresh_loop(), "token-refresh")
        self._spawn(self._run_eventsub(), "eventsub")
        self._spawn(self._stream_monitor(), "stream-monitor")

    async def _wait_for_font(self) -> None:
        if self._fonts.has_font():
            return
        logger.warning(
            "\n%s\nNo custom font uploaded. Upload a .ttf or .otf font from the "
            "settings page before anything can be printed.\n%s",
            _BANNER,
            _BANNER,
        )
        await self._fonts.wait_for_font()
        logger.info("Custom font available; continuing startup")

    async def _connect_printer(self) -> None:
        if self._settings_manager.get_bool("DRY_RUN_MODE"):
            logger.info("Dry-run mode: not connecting to the printer")
            return
        if not self._settings_manager.get("PRINTER_ADDRESS"):
            logger.warning("No printer address configured; set PRINTER_ADDRESS on the settings page")
            return
        try:
            await self._printer.connect()
        except Exception as exc:
            logger.warning("Printer not reachable at startup: %s", exc)
        else:
            logger.info("Printer connected")

    async def _wait_for_token(self) -> None:
        try:
            token = await self._tokens.ensure_valid_token()
        except (OAuthTokenExchangeError, OAuthTokenNotFoundError, httpx.HTTPError) as exc:
            logger.warning("Stored Twitch token could not be refreshed: %s", exc)
            token = None
        if token is not None:
            return
        logger.warning(
            "\n%s\nTwitch authentication required. Open %s in a browser.\n%s",
            _BANNER,
            self.auth_url,
            _BANNER,
        )
        await self._tokens.wait_for_token()
        logger.info("Twitch token available; connecting to EventSub")

    async def _run_eventsub(self) -> None:
        session = self._session_factory()
        self._session = session
        try:
            await session.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("EventSub connection failed")
        finally:
            self._session = None
        logger.warning("EventSub connection closed; restart the service to receive events again")

    async def poll_stream_status(self) -> None:
        """Sync the cached stream status with Helix once."""
        info = await self._api.get_stream_info()
        if info["is_live"]:
            if self._stream_status.is_live:
                self._stream_status.update_viewer_count(info["viewer_count"])
                return
            started_at = None
            if info.get("started_at"):
                started_at = datetime.fromisoformat(info["started_at"].replace("Z", "+00:00"))
            self._stream_status.set_online(started_at, info["viewer_count"])
        elif self._stream_status.is_live:
            self._stream_status.set_offline()

    async def _stream_monitor(self) -> None:
        while True:
            try:
                await self.poll_stream_status()
            except asyncio.CancelledError:
                raise
            except (HelixAPIError, httpx.HTTPError, OAuthTokenExchangeError, OAuthTokenNotFoundError) as exc:
                logger.debug("Stream status poll failed: %s", exc)
            await asyncio.sleep(self.STREAM_POLL_SECONDS)

    async def stop(self) -> None:
        session = self._session
        if session is not None:
            await session.shutdown()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._printer.close()
        logger.info("Runtime stopped")


__all__ = ["OverlayRuntime"]

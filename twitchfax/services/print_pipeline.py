"""
Turn formatted event text into faxes.

Every print renders a colour image for the overlay and a monochrome image for
the printer, stores both as a fax, announces the fax to overlay clients and
queues the monochrome image on the printer worker.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from PIL import Image

from twitchfax.schemas.events import MessageFragment
from twitchfax.services.broadcast import EventBroadcaster
from twitchfax.services.fax_store import Fax, FaxStore
from twitchfax.services.printer import PrinterService
from twitchfax.services.rendering import FaxRenderer, to_monochrome
from twitchfax.services.settings import SettingsManager

logger = logging.getLogger(__name__)


class PrintPipeline:
    """Render, store, broadcast and queue faxes."""

    def __init__(
        self,
        renderer: FaxRenderer,
        fax_store: FaxStore,
        settings: SettingsManager,
        broadcaster: EventBroadcaster,
        printer: PrinterService,
    ) -> None:
        self._renderer = renderer
        self._faxes = fax_store
        self._settings = settings
        self._broadcaster = broadcaster
        self._printer = printer

    def _monochrome(self, image: Image.Image) -> Image.Image:
        return to_monochrome(
            image,
            dither=self._settings.get_bool("DITHER"),
            black_point=self._settings.get_int("BLACK_POINT"),
        )

    async def _render_pair(
        self, render: Callable[..., Image.Image], *args: Any, **kwargs: Any
    ) -> tuple[Image.Image, Image.Image]:
        """Render the colour and monochrome variants off the event loop."""

        def both() -> tuple[Image.Image, Image.Image]:
            color_image = render(*args, color=True, **kwargs)
            mono_image = self._monochrome(render(*args, color=False, **kwargs))
            return color_image, mono_image

        return await asyncio.to_thread(both)

    async def _publish(
        self,
        user_name: str,
        message: str,
        color_image: Image.Image,
        mono_image: Image.Image,
        timestamp: Optional[datetime],
    ) -> Fax:
        fax = await self._faxes.save_async(
            user_name, message, color_image, mono_image, timestamp=timestamp
        )
        self._broadcaster.publish(fax.to_event())
        self._printer.enqueue(mono_image)
        if self._settings.get_bool("DRY_RUN_MODE"):
            logger.info("Fax %s saved (dry-run) to %s", fax.id, fax.mono_path)
        return fax

    async def print_out(
        self,
        user_name: str,
        fragments: Sequence[MessageFragment],
        timestamp: Optional[datetime] = None,
    ) -> Fax:
        """Print a user's chat message or reward input."""
        color_image, mono_image = await self._render_pair(
            self._renderer.render_message, user_name, fragments, timestamp=timestamp
        )
        message = "".join(fragment.text for fragment in fragments)
        return await self._publish(user_name, message, color_image, mono_image, timestamp)

    async def print_out_with_title(
        self,
        title: str,
        user_name: str,
        extra: str = "",
        details: str = "",
        timestamp: Optional[datetime] = None,
    ) -> Fax:
        """Print a titled card such as a follow or cheer thank-you."""
        color_image, mono_image = await self._render_pair(
            self._renderer.render_titled, title, user_name, extra, details, timestamp=timestamp
        )
        message = "\n".join(part for part in (title, extra, details) if part)
        return await self._publish(user_name, message, color_image, mono_image, timestamp)

    def local_now(self) -> datetime:
        name = self._settings.get("TIMEZONE")
        try:
            return datetime.now(ZoneInfo(name))
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r; using local time", name)
            return datetime.now().astimezone()

    async def print_clock(
        self,
        now: Optional[datetime] = None,
        leaderboard: Sequence[dict] = (),
    ) -> Fax:
        """Print the clock card (used hourly and at startup)."""
        moment = now or self.local_now()
        color_image, mono_image = await self._render_pair(
            self._renderer.render_clock, moment, leaderboard
        )
        return await self._publish("clock", moment.strftime("%H:%M"), color_image, mono_image, moment)


__all__ = ["PrintPipeline"]

"""Hourly clock card printing."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from twitchfax.clients.helix import TwitchAPIClient
from twitchfax.services.fax_store import Fax
from twitchfax.services.print_pipeline import PrintPipeline
from twitchfax.services.settings import SettingsManager

logger = logging.getLogger(__name__)


def seconds_until_next_hour(now: datetime) -> float:
    next_hour = (now + timedelta(hours=1)).replace(minute=0, second=0, microsecond=0)
    return max(0.0, (next_hour - now).total_seconds())


class ClockPrinter:
    """Print a clock card on the hour while ``CLOCK_ENABLED`` is on."""

    def __init__(
        self,
        pipeline: PrintPipeline,
        settings: SettingsManager,
        api_client: Optional[TwitchAPIClient] = None,
    ) -> None:
        self._pipeline = pipeline
        self._settings = settings
        self._api = api_client

    async def _leaderboard(self) -> list[dict]:
        if self._api is None:
            return []
        try:
            return await self._api.get_bits_leaderboard("week")
        except Exception as exc:
            logger.info("Bits leaderboard unavailable for clock card: %s", exc)
            return []

    async def print_now(self) -> Fax:
        leaderboard = await self._leaderboard()
        return await self._pipeline.print_clock(leaderboard=leaderboard)

    async def print_initial_clock(self) -> None:
        logger.info("Printing startup clock card")
        await self.print_now()

    async def run(self) -> None:
        while True:
            await asyncio.sleep(seconds_until_next_hour(self._pipeline.local_now()) + 0.5)
            if not self._settings.get_bool("CLOCK_ENABLED"):
                continue
            try:
                await self.print_now()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Clock print failed")


__all__ = ["ClockPrinter", "seconds_until_next_hour"]

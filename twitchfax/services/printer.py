"""
Printer connection management and the single print worker.

All printer traffic (print jobs, keep-alive reconnects, manual reconnects
and connection tests) goes through one ``asyncio.Lock`` so two jobs can never
write to the printer at the same time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from PIL import Image

from twitchfax.clients.cat_printer import CatPrinterClient, PrinterNotConnectedError, scan_printers
from twitchfax.services.settings import SettingsManager
from twitchfax.services.status import PrinterStatus

logger = logging.getLogger(__name__)

Scanner = Callable[..., Awaitable[list[Dict[str, Any]]]]


class PrinterService:
    """Own the printer client, the print queue and the keep-alive cycle."""

    def __init__(
        self,
        settings: SettingsManager,
        status: PrinterStatus,
        *,
        client_factory: Callable[[str], Any] = CatPrinterClient,
        scanner: Scanner = scan_printers,
        queue_size: int = 100,
    ) -> None:
        self._settings = settings
        self._status = status
        self._client_factory = client_factory
        self._scanner = scanner
        self._queue: asyncio.Queue[Image.Image] = asyncio.Queue(maxsize=queue_size)
        self._lock = asyncio.Lock()
        self._client: Optional[Any] = None
        self._last_activity = time.monotonic()

    @property
    def pending_jobs(self) -> int:
        return self._queue.qsize()

    @property
    def connected(self) -> bool:
        return self._status.connected

    def _touch(self) -> None:
        self._last_activity = time.monotonic()

    def enqueue(self, image: Image.Image) -> bool:
        """Queue a monochrome image for printing; drops it if the queue is full."""
        try:
            self._queue.put_nowait(image)
        except asyncio.QueueFull:
            logger.error("Print queue is full; dropping job")
            return False
        return True

    async def _connect_locked(self, address: Optional[str] = None) -> Any:
        target = address or self._settings.get("PRINTER_ADDRESS")
        if not target:
            raise PrinterNotConnectedError("No printer address configured.")
        if self._client is not None and self._client.address != target:
            await self._disconnect_locked()
        if self._client is None:
            self._client = self._client_factory(target)
        try:
            await self._client.connect()
        except Exception:
            self._status.set_connected(False)
            raise
        self._status.set_connected(True, target)
        return self._client

    async def _disconnect_locked(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            try:
                await client.disconnect()
            except Exception:
                logger.warning("Error while disconnecting printer", exc_info=True)
        self._status.set_connected(False)

    async def connect(self, address: Optional[str] = None) -> None:
        async with self._lock:
            await self._connect_locked(address)

    async def disconnect(self) -> None:
        async with self._lock:
            await self._disconnect_locked()

    async def reconnect(self) -> None:
        async with self._lock:
            await self._disconnect_locked()
            await self._connect_locked()
            self._touch()

    def orient(self, image: Image.Image) -> Image.Image:
        """Apply the rotation settings as they are configured right now."""
        if self._settings.get_bool("AUTO_ROTATE") and image.width > image.height:
            image = image.transpose(Image.Transpose.ROTATE_90)
        if self._settings.get_bool("ROTATE_PRINT"):
            image = image.transpose(Image.Transpose.ROTATE_180)
        return image

    async def print_image(self, image: Image.Image) -> bool:
        """Print one image now. Returns False when nothing was sent."""
        async with self._lock:
            self._touch()
            if self._settings.get_bool("DRY_RUN_MODE"):
                logger.info("Dry-run mode: skipping physical print")
                return False
            try:
                client = await self._connect_locked()
            except Exception:
                logger.exception("Printer is not reachable; dropping print job")
                return False
            try:
                await client.print_image(
                    self.orient(image), best_quality=self._settings.get_bool("BEST_QUALITY")
                )
            except Exception:
                logger.exception("Printing failed; dropping print job")
                await self._disconnect_locked()
                return False
            self._touch()
            return True

    async def run_worker(self) -> None:
        """Consume the print queue forever, one job at a time."""
        while True:
            image = await self._queue.get()
            try:
                await self.print_image(image)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unexpected error in print worker")
            finally:
                self._queue.task_done()

    async def keep_alive_loop(self, check_interval: float = 5.0) -> None:
        """Reconnect after ``KEEP_ALIVE_INTERVAL`` idle seconds when enabled."""
        while True:
            await asyncio.sleep(check_interval)
            if not self._settings.get_bool("KEEP_ALIVE_ENABLED"):
                continue
            if self._settings.get_bool("DRY_RUN_MODE") or not self._settings.get("PRINTER_ADDRESS"):
                continue
            idle = time.monotonic() - self._last_activity
            if idle < self._settings.get_int("KEEP_ALIVE_INTERVAL"):
                continue
            logger.info("Keep-alive: reconnecting printer after %.0f idle seconds", idle)
            try:
                await self.reconnect()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Keep-alive reconnect failed", exc_info=True)
                self._touch()

    async def scan(self, timeout: float = 10.0, *, all_devices: bool = False) -> list[Dict[str, Any]]:
        return await self._scanner(timeout, all_devices=all_devices)

    async def drain(self) -> None:
        """Wait until every queued job has been handled."""
        await self._queue.join()

    async def test_connection(self, address: str) -> Dict[str, Any]:
        """Try connecting to ``address`` and report the outcome."""
        async with self._lock:
            if self._client is not None and self._client.address == address and self._client.is_connected:
                return {"success": True, "message": "Printer already connected", "address": address}
            try:
                await self._connect_locked(address)
            except Exception as exc:
                logger.warning("Printer connection test for %s failed: %s", address, exc)
                return {"success": False, "message": str(exc) or type(exc).__name__, "address": address}
            self._touch()
            return {"success": True, "message": "Connected to printer", "address": address}

    async def close(self) -> None:
        await self.disconnect()


__all__ = ["PrinterService"]

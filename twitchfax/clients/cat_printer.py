"""
Bluetooth LE client for GB01-family "cat" thermal printers.

Packets are framed as ``51 78 <cmd> 00 <len lo> <len hi> <payload> <crc8> ff``
and written to the printer's ``ae01`` characteristic without response.
"""

from __future__ import annotations

import asyncio
import logging
from enum import IntEnum
from typing import Any, Callable, Dict, Optional

from bleak import BleakClient, BleakScanner
from PIL import Image

logger = logging.getLogger(__name__)

WRITE_CHARACTERISTIC = "0000ae01-0000-1000-8000-00805f9b34fb"
PRINT_WIDTH = 384
KNOWN_PRINTER_PREFIXES = ("GB0", "GT0", "MX0", "MX1", "YT0", "_ZZ")
_WRITE_CHUNK = 180
_WRITE_DELAY_SECONDS = 0.01
_LATTICE_START = bytes([0xAA, 0x55, 0x17, 0x38, 0x44, 0x5F, 0x5F, 0x5F, 0x44, 0x38, 0x2C])
_LATTICE_END = bytes([0xAA, 0x55, 0x17, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x17])


class Command(IntEnum):
    FEED_PAPER = 0xA1
    DRAW_BITMAP = 0xA2
    GET_DEVICE_STATUS = 0xA3
    SET_QUALITY = 0xA4
    LATTICE = 0xA6
    SET_ENERGY = 0xAF
    SET_SPEED = 0xBD
    SET_DRAWING_MODE = 0xBE


class PrinterNotConnectedError(RuntimeError):
    """Raised when a print is attempted without an open BLE connection."""


def _build_crc8_table() -> bytes:
    table = []
    for value in range(256):
        crc = value
        for _ in range(8):
            crc = ((crc << 1) ^ 0x07) & 0xFF if crc & 0x80 else (crc << 1) & 0xFF
        table.append(crc)
    return bytes(table)


_CRC8_TABLE = _build_crc8_table()
# Pillow packs 1-bit rows MSB first with set bits meaning white; the printer
# wants LSB first with set bits meaning ink.
_ROW_TRANSLATION = bytes(int(f"{(~value) & 0xFF:08b}"[::-1], 2) for value in range(256))


def crc8(data: bytes) -> int:
    crc = 0
    for byte in data:
        crc = _CRC8_TABLE[(crc ^ byte) & 0xFF]
    return crc


def build_packet(command: int, payload: bytes) -> bytes:
    length = len(payload)
    header = bytes([0x51, 0x78, int(command), 0x00, length & 0xFF, (length >> 8) & 0xFF])
    return header + payload + bytes([crc8(payload), 0xFF])


def prepare_image(image: Image.Image) -> Image.Image:
    """Scale to the print head width and reduce to 1-bit."""
    if image.width != PRINT_WIDTH:
        height = max(1, round(image.height * PRINT_WIDTH / image.width))
        image = image.resize((PRINT_WIDTH, height), Image.Resampling.LANCZOS)
    if image.mode != "1":
        image = image.convert("1")
    return image


def image_rows(image: Image.Image) -> list[bytes]:
    bitmap = prepare_image(image)
    row_bytes = PRINT_WIDTH // 8
    packed = bitmap.tobytes()
    return [
        packed[offset:offset + row_bytes].translate(_ROW_TRANSLATION)
        for offset in range(0, len(packed), row_bytes)
    ]


def build_print_job(image: Image.Image, *, best_quality: bool = True, feed_lines: int = 80) -> bytes:
    """Encode an image as the full command sequence for one print."""
    energy = 0xFFFF if best_quality else 0x3000
    packets = [
        build_packet(Command.SET_QUALITY, bytes([0x35 if best_quality else 0x33])),
        build_packet(Command.LATTICE, _LATTICE_START),
        build_packet(Command.SET_ENERGY, energy.to_bytes(2, "little")),
        build_packet(Command.SET_DRAWING_MODE, bytes([0x00])),
        build_packet(Command.SET_SPEED, bytes([0x23 if best_quality else 0x19])),
    ]
    packets.extend(build_packet(Command.DRAW_BITMAP, row) for row in image_rows(image))
    packets.append(build_packet(Command.FEED_PAPER, feed_lines.to_bytes(2, "little")))
    packets.append(build_packet(Command.LATTICE, _LATTICE_END))
    return b"".join(packets)


class CatPrinterClient:
    """Connection to one printer identified by its Bluetooth address."""

    def __init__(
        self,
        address: str,
        *,
        timeout: float = 10.0,
        client_factory: Callable[..., Any] = BleakClient,
    ) -> None:
        self.address = address
        self._timeout = timeout
        self._client_factory = client_factory
        self._client: Optional[Any] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.is_connected)

    async def connect(self) -> None:
        if self.is_connected:
            return
        logger.info("Connecting to printer %s", self.address)
        client = self._client_factory(self.address, timeout=self._timeout)
        await client.connect()
        self._client = client
        logger.info("Connected to printer %s", self.address)

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        finally:
            logger.info("Disconnected from printer %s", self.address)

    async def print_image(self, image: Image.Image, *, best_quality: bool = True) -> None:
        if not self.is_connected:
            raise PrinterNotConnectedError(f"Printer {self.address} is not connected.")
        data = build_print_job(image, best_quality=best_quality)
        for offset in range(0, len(data), _WRITE_CHUNK):
            await self._client.write_gatt_char(
                WRITE_CHARACTERISTIC, data[offset:offset + _WRITE_CHUNK], response=False
            )
            await asyncio.sleep(_WRITE_DELAY_SECONDS)
        logger.info("Sent %d bytes to printer %s", len(data), self.address)


async def scan_printers(timeout: float = 10.0, *, all_devices: bool = False) -> list[Dict[str, Any]]:
    """Discover nearby BLE devices, keeping likely printers unless ``all_devices``."""
    devices = await BleakScanner.discover(timeout=timeout)
    results = []
    for device in devices:
        name = device.name or ""
        if not all_devices and not name.startswith(KNOWN_PRINTER_PREFIXES):
            continue
        results.append({"address": device.address, "name": name or "Unknown"})
    results.sort(key=lambda item: item["name"])
    return results


__all__ = [
    "CatPrinterClient",
    "Command",
    "PrinterNotConnectedError",
    "build_packet",
    "build_print_job",
    "crc8",
    "image_rows",
    "scan_printers",
]

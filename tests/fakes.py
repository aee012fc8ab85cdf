"""Shared fakes for printer, fonts and database-backed services."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from PIL import Image, ImageFont

from twitchfax.clients.sqlite_store import SQLiteStore
from twitchfax.services.settings import SettingsManager


class DefaultFontProvider:
    """Serve Pillow's bundled font so rendering works without an upload."""

    def __init__(self) -> None:
        self.sizes: list[int] = []

    def load(self, size: int) -> ImageFont.FreeTypeFont:
        self.sizes.append(size)
        return ImageFont.load_default(size=size)


class FakePrinterClient:
    """Records every call instead of talking Bluetooth."""

    instances: list["FakePrinterClient"] = []

    def __init__(self, address: str) -> None:
        self.address = address
        self.is_connected = False
        self.connect_calls = 0
        self.printed: list[Image.Image] = []
        FakePrinterClient.instances.append(self)

    async def connect(self) -> None:
        self.connect_calls += 1
        self.is_connected = True

    async def disconnect(self) -> None:
        self.is_connected = False

    async def print_image(self, image: Image.Image, *, best_quality: bool = True) -> None:
        self.printed.append(image)


def make_settings(tmp_path: Path, **values: str) -> SettingsManager:
    manager = SettingsManager(SQLiteStore(tmp_path / "local.db"))
    manager.initialize_defaults()
    if values:
        manager.update_many(values)
    return manager


def make_store(tmp_path: Path) -> SQLiteStore:
    return SQLiteStore(tmp_path / "local.db")


class RecordingPipeline:
    """Stands in for the print pipeline and remembers each request."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, list[Any]]] = []
        self.titled: list[tuple[str, str, str, str]] = []

    async def print_out(self, user_name: str, fragments: list[Any], timestamp: Any = None) -> None:
        self.messages.append((user_name, list(fragments)))

    async def print_out_with_title(
        self, title: str, user_name: str, extra: str = "", details: str = "", timestamp: Any = None
    ) -> None:
        self.titled.append((title, user_name, extra, details))


__all__ = [
    "DefaultFontProvider",
    "FakePrinterClient",
    "RecordingPipeline",
    "make_settings",
    "make_store",
]

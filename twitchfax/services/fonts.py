"""Management of the single custom font used to render faxes."""

from __future__ import annotations

import asyncio
import io
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import ImageFont

logger = logging.getLogger(__name__)

ALLOWED_FONT_EXTENSIONS = frozenset({".ttf", ".otf"})
MAX_FONT_SIZE_BYTES = 50 * 1024 * 1024


class FontNotConfiguredError(RuntimeError):
    """Raised when rendering is attempted before a font has been uploaded."""

    def __init__(self) -> None:
        super().__init__("No custom font uploaded; upload one from the settings page.")


class FontValidationError(ValueError):
    """Raised for uploads that are not a usable TrueType/OpenType font."""


class FontManager:
    """Store one uploaded font and hand out sized Pillow font objects."""

    def __init__(self, fonts_dir: Path) -> None:
        self._fonts_dir = Path(fonts_dir)
        self._fonts_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._cache: Dict[int, ImageFont.FreeTypeFont] = {}
        self._available = asyncio.Event()
        self._current: Optional[Path] = self._discover()
        if self._current is not None:
            self._available.set()
            logger.info("Using custom font %s", self._current.name)

    def _discover(self) -> Optional[Path]:
        for candidate in sorted(self._fonts_dir.iterdir()):
            if candidate.is_file() and candidate.suffix.lower() in ALLOWED_FONT_EXTENSIONS:
                return candidate
        return None

    @property
    def current_path(self) -> Optional[Path]:
        return self._current

    def has_font(self) -> bool:
        return self._current is not None

    def validate(self, filename: str, data: bytes) -> str:
        """Return the sanitized filename or raise :class:`FontValidationError`."""
        name = Path(filename or "").name
        if not name:
            raise FontValidationError("A filename is required.")
        if Path(name).suffix.lower() not in ALLOWED_FONT_EXTENSIONS:
            raise FontValidationError("Only .ttf and .otf fonts are supported.")
        if not data:
            raise FontValidationError("Uploaded font is empty.")
        if len(data) > MAX_FONT_SIZE_BYTES:
            raise FontValidationError("Font file exceeds the 50MB limit.")
        try:
            ImageFont.truetype(io.BytesIO(data), 16)
        except OSError as exc:
            raise FontValidationError("File is not a readable font.") from exc
        return name

    def save(self, filename: str, data: bytes) -> Dict[str, Any]:
        """Replace the current font with an uploaded one."""
        name = self.validate(filename, data)
        with self._lock:
            for existing in self._fonts_dir.iterdir():
                if existing.is_file() and existing.suffix.lower() in ALLOWED_FONT_EXTENSIONS:
                    existing.unlink()
            target = self._fonts_dir / name
            target.write_bytes(data)
            self._current = target
            self._cache.clear()
        self._available.set()
        logger.info("Custom font uploaded: %s (%d bytes)", name, len(data))
        return self.info()

    def delete(self) -> bool:
        with self._lock:
            if self._current is None:
                return False
            self._current.unlink(missing_ok=True)
            logger.info("Custom font deleted: %s", self._current.name)
            self._current = None
            self._cache.clear()
        self._available.clear()
        return True

    def info(self) -> Dict[str, Any]:
        current = self._current
        if current is None or not current.exists():
            return {"hasCustomFont": False, "filename": None, "fileSize": 0, "modifiedAt": None}
        stat = current.stat()
        return {
            "hasCustomFont": True,
            "filename": current.name,
            "fileSize": stat.st_size,
            "modifiedAt": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
        }

    def load(self, size: int) -> ImageFont.FreeTypeFont:
        """Return the custom font at ``size`` points."""
        with self._lock:
            if self._current is None:
                raise FontNotConfiguredError()
            font = self._cache.get(size)
            if font is None:
                font = ImageFont.truetype(str(self._current), size)
                self._cache[size] = font
            return font

    async def wait_for_font(self) -> None:
        await self._available.wait()


__all__ = [
    "ALLOWED_FONT_EXTENSIONS",
    "FontManager",
    "FontNotConfiguredError",
    "FontValidationError",
    "MAX_FONT_SIZE_BYTES",
]

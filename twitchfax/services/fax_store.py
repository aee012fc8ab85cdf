"""In-memory registry of recently rendered faxes and their PNG files."""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import Image

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("color", "mono")

FAX_ID_LENGTH = 21
_FAX_ID_ALPHABET = string.ascii_letters + string.digits + "_-"


def new_fax_id() -> str:
    return "".join(secrets.choice(_FAX_ID_ALPHABET) for _ in range(FAX_ID_LENGTH))


@dataclass(slots=True)
class Fax:
    id: str
    user_name: str
    message: str
    timestamp: datetime
    color_path: Path
    mono_path: Path
    expires_at: float

    @property
    def image_url(self) -> str:
        return f"/fax/{self.id}/color"

    def to_event(self) -> Dict[str, Any]:
        return {
            "type": "fax",
            "id": self.id,
            "timestamp": int(self.timestamp.timestamp() * 1000),
            "username": self.user_name,
            "displayName": self.user_name,
            "message": self.message,
            "imageUrl": self.image_url,
        }


class FaxStore:
    """Keep faxes for a fixed time-to-live, then delete their files."""

    DEFAULT_TTL_SECONDS = 600.0

    def __init__(self, output_dir: Path, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        self._output_dir = Path(output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        self._ttl = ttl_seconds
        self._faxes: Dict[str, Fax] = {}
        self._timers: Dict[str, asyncio.TimerHandle | threading.Timer] = {}
        self._lock = threading.Lock()

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def _new_fax(self, user_name: str, message: str, timestamp: Optional[datetime]) -> Fax:
        fax_id = new_fax_id()
        return Fax(
            id=fax_id,
            user_name=user_name,
            message=message,
            timestamp=timestamp or datetime.now(timezone.utc),
            color_path=self._output_dir / f"{fax_id}_color.png",
            mono_path=self._output_dir / f"{fax_id}_mono.png",
            expires_at=time.monotonic() + self._ttl,
        )

    @staticmethod
    def _write_images(fax: Fax, color_image: Image.Image, mono_image: Image.Image) -> None:
        color_image.save(fax.color_path, format="PNG")
        mono_image.save(fax.mono_path, format="PNG")

    def _register(self, fax: Fax) -> Fax:
        with self._lock:
            self._faxes[fax.id] = fax
        self._schedule_removal(fax.id)
        logger.info("Saved fax %s for %s (%s)", fax.id, fax.user_name, fax.color_path.parent)
        return fax

    def save(
        self,
        user_name: str,
        message: str,
        color_image: Image.Image,
        mono_image: Image.Image,
        timestamp: Optional[datetime] = None,
    ) -> Fax:
        """Write both PNGs, register the fax and schedule its removal."""
        fax = self._new_fax(user_name, message, timestamp)
        self._write_images(fax, color_image, mono_image)
        return self._register(fax)

    async def save_async(
        self,
        user_name: str,
        message: str,
        color_image: Image.Image,
        mono_image: Image.Image,
        timestamp: Optional[datetime] = None,
    ) -> Fax:
        """Like :meth:`save`, but encodes the PNGs in a worker thread."""
        fax = self._new_fax(user_name, message, timestamp)
        await asyncio.to_thread(self._write_images, fax, color_image, mono_image)
        return self._register(fax)

    def _schedule_removal(self, fax_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            timer = threading.Timer(self._ttl, self.remove, args=(fax_id,))
            timer.daemon = True
            timer.start()
            handle: asyncio.TimerHandle | threading.Timer = timer
        else:
            handle = loop.call_later(self._ttl, self.remove, fax_id)
        with self._lock:
            self._timers[fax_id] = handle

    def get(self, fax_id: str) -> Optional[Fax]:
        with self._lock:
            fax = self._faxes.get(fax_id)
        if fax is None:
            return None
        if time.monotonic() >= fax.expires_at:
            self.remove(fax_id)
            return None
        return fax

    def get_image_path(self, fax_id: str, image_type: str) -> Optional[Path]:
        if image_type not in IMAGE_TYPES:
            raise ValueError(f"image type must be one of {', '.join(IMAGE_TYPES)}")
        fax = self.get(fax_id)
        if fax is None:
            return None
        return fax.color_path if image_type == "color" else fax.mono_path

    def remove(self, fax_id: str) -> bool:
        with self._lock:
            fax = self._faxes.pop(fax_id, None)
            handle = self._timers.pop(fax_id, None)
        if handle is not None:
            handle.cancel()
        if fax is None:
            return False
        for path in (fax.color_path, fax.mono_path):
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not delete fax image %s", path)
        logger.debug("Removed fax %s", fax_id)
        return True

    def clear(self) -> None:
        with self._lock:
            fax_ids = list(self._faxes)
        for fax_id in fax_ids:
            self.remove(fax_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._faxes)


__all__ = ["FAX_ID_LENGTH", "Fax", "FaxStore", "IMAGE_TYPES", "new_fax_id"]

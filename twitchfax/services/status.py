"""Small shared status caches for the printer link and the stream."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

StatusListener = Callable[[bool], None]


class PrinterStatus:
    """Connected flag for the printer, with change listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connected = False
        self._address: Optional[str] = None
        self._changed_at: Optional[datetime] = None
        self._listeners: list[StatusListener] = []

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def set_connected(self, connected: bool, address: Optional[str] = None) -> None:
        with self._lock:
            changed = connected != self._connected
            self._connected = connected
            if address is not None:
                self._address = address
            if changed:
                self._changed_at = datetime.now(timezone.utc)
        if changed:
            for listener in list(self._listeners):
                listener(connected)

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._connected

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "connected": self._connected,
                "address": self._address,
                "changed_at": self._changed_at.isoformat() if self._changed_at else None,
            }


class StreamStatus:
    """Whether the channel is live, updated by EventSub and periodic polling."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._is_live = False
        self._started_at: Optional[datetime] = None
        self._viewer_count = 0
        self._updated_at: Optional[datetime] = None

    def set_online(self, started_at: Optional[datetime] = None, viewer_count: int = 0) -> None:
        with self._lock:
            self._is_live = True
            self._started_at = started_at or datetime.now(timezone.utc)
            self._viewer_count = viewer_count
            self._updated_at = datetime.now(timezone.utc)

    def set_offline(self) -> None:
        with self._lock:
            self._is_live = False
            self._started_at = None
            self._viewer_count = 0
            self._updated_at = datetime.now(timezone.utc)

    def update_viewer_count(self, viewer_count: int) -> None:
        with self._lock:
            self._viewer_count = viewer_count
            self._updated_at = datetime.now(timezone.utc)

    @property
    def is_live(self) -> bool:
        with self._lock:
            return self._is_live

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            duration = None
            if self._is_live and self._started_at is not None:
                duration = int((datetime.now(timezone.utc) - self._started_at).total_seconds())
            return {
                "is_live": self._is_live,
                "started_at": self._started_at.isoformat() if self._started_at else None,
                "viewer_count": self._viewer_count,
                "duration_seconds": duration,
                "updated_at": self._updated_at.isoformat() if self._updated_at else None,
            }


__all__ = ["PrinterStatus", "StreamStatus"]

"""
Logging utilities for the web server and background tasks.

Provides a consistent logging format plus an in-memory ring buffer that backs
the ``/api/logs`` endpoints.
"""

import logging
import sys
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class LogBuffer:
    """Thread-safe ring buffer of recent log entries."""

    def __init__(self, max_entries: int = 1000) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def add(self, entry: dict[str, Any]) -> None:
        with self._lock:
            self._entries.append(entry)

    def get_all(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._entries)

    def get_recent(self, limit: int) -> list[dict[str, Any]]:
        if limit <= 0:
            return []
        with self._lock:
            return list(self._entries)[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def to_text(self) -> str:
        lines = []
        for entry in self.get_all():
            lines.append(
                f"{entry['timestamp']} | {entry['level']} | {entry['logger']} | {entry['message']}"
            )
        return "\n".join(lines)


class LogBufferHandler(logging.Handler):
    """Copy formatted records into a :class:`LogBuffer`."""

    def __init__(self, buffer: LogBuffer) -> None:
        super().__init__()
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if record.exc_info:
                message = f"{message}\n{logging.Formatter().formatException(record.exc_info)}"
            self.buffer.add(
                {
                    "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                    "level": record.levelname,
                    "logger": record.name,
                    "message": message,
                }
            )
        except Exception:  # pragma: no cover - logging must never raise
            self.handleError(record)


def configure_logging(level: str = "INFO", buffer: Optional[LogBuffer] = None) -> None:
    """Configure root logging and optionally mirror records into ``buffer``."""
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    if buffer is None:
        return
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, LogBufferHandler) and handler.buffer is buffer:
            return
    root.addHandler(LogBufferHandler(buffer))


__all__ = ["LOG_FORMAT", "LogBuffer", "LogBufferHandler", "configure_logging"]

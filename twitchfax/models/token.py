"""
Domain model for persisted Twitch OAuth tokens.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class Token:
    """An access/refresh token pair as stored in the ``tokens`` table."""

    access_token: str = ""
    refresh_token: str = ""
    scope: str = ""
    expires_at: int = 0

    def is_valid(self, now: Optional[float] = None) -> bool:
        if not self.access_token:
            return False
        current = time.time() if now is None else now
        return current < self.expires_at

    def seconds_until_expiry(self, now: Optional[float] = None) -> float:
        current = time.time() if now is None else now
        return self.expires_at - current


__all__ = ["Token"]

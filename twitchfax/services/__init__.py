"""Service layer exports."""

from .broadcast import EventBroadcaster
from .status import PrinterStatus, StreamStatus
from .token_cipher import TokenCipherService

__all__ = ["EventBroadcaster", "PrinterStatus", "StreamStatus", "TokenCipherService"]

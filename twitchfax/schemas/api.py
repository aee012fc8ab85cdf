"""Request bodies for the REST endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class PrinterTestRequest(BaseModel):
    address: str = Field(..., description="Bluetooth MAC address to try.")


class FontPreviewRequest(BaseModel):
    text: str = Field(
        "The quick brown fox jumps over the lazy dog",
        max_length=500,
        description="Sample text rendered with the current font.",
    )


class DebugEventRequest(BaseModel):
    """Synthetic event parameters for the debug endpoints."""

    username: str = Field("debug_user", min_length=1)
    amount: int = Field(1, ge=0, description="Bits, viewers, gifts or months.")
    message: str = ""
    reward_id: Optional[str] = Field(
        None, description="Reward id for redemptions; defaults to the trigger reward."
    )


class PlaylistCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""


class PlaylistUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class PlaylistTrackRequest(BaseModel):
    track_id: str
    position: Optional[int] = Field(None, ge=0)


__all__ = [
    "DebugEventRequest",
    "FontPreviewRequest",
    "PlaylistCreateRequest",
    "PlaylistTrackRequest",
    "PlaylistUpdateRequest",
    "PrinterTestRequest",
]

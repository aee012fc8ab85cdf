"""
Server-sent events helpers shared by the overlay and music streams.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Request
from fastapi.responses import StreamingResponse

from twitchfax.services.broadcast import EventBroadcaster

HEARTBEAT_SECONDS = 30.0
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data, default=str)}\n\n"


async def event_stream(
    request: Request,
    broadcaster: EventBroadcaster,
    *,
    initial: Optional[Dict[str, Any]] = None,
    heartbeat_seconds: float = HEARTBEAT_SECONDS,
) -> AsyncIterator[str]:
    """Yield broadcaster events as SSE frames until the client goes away.

    A ``: heartbeat`` comment is sent whenever nothing was published for
    ``heartbeat_seconds`` so proxies keep the connection open.
    """
    queue = broadcaster.subscribe()
    try:
        if initial is not None:
            yield format_event(initial)
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue
            yield format_event(event)
    finally:
        broadcaster.unsubscribe(queue)


def sse_response(
    request: Request,
    broadcaster: EventBroadcaster,
    *,
    initial: Optional[Dict[str, Any]] = None,
) -> StreamingResponse:
    return StreamingResponse(
        event_stream(request, broadcaster, initial=initial),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


__all__ = ["HEARTBEAT_SECONDS", "event_stream", "format_event", "sse_response"]

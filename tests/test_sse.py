try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import json

import pytest

from twitchfax.api.sse import event_stream, format_event
from twitchfax.services.broadcast import EventBroadcaster


class FakeRequest:
    def __init__(self) -> None:
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


def test_format_event_is_a_data_frame() -> None:
    frame = format_event({"type": "fax", "id": "abc"})

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {"type": "fax", "id": "abc"}


@pytest.mark.anyio
async def test_stream_sends_initial_then_published_events() -> None:
    broadcaster = EventBroadcaster("overlay")
    request = FakeRequest()
    stream = event_stream(request, broadcaster, initial={"type": "connected"})

    first = await stream.__anext__()
    assert json.loads(first[len("data: "):]) == {"type": "connected"}
    assert broadcaster.client_count == 1

    broadcaster.publish({"type": "fax", "id": "1"})
    second = await stream.__anext__()
    assert json.loads(second[len("data: "):]) == {"type": "fax", "id": "1"}

    await stream.aclose()
    assert broadcaster.client_count == 0


@pytest.mark.anyio
async def test_stream_sends_heartbeat_when_idle() -> None:
    broadcaster = EventBroadcaster("overlay")
    stream = event_stream(FakeRequest(), broadcaster, heartbeat_seconds=0.01)

    assert await stream.__anext__() == ": heartbeat\n\n"
    await stream.aclose()


@pytest.mark.anyio
async def test_stream_ends_when_client_disconnects() -> None:
    broadcaster = EventBroadcaster("overlay")
    request = FakeRequest()
    request.disconnected = True

    frames = [frame async for frame in event_stream(request, broadcaster)]

    assert frames == []
    assert broadcaster.client_count == 0


def test_full_queue_drops_events_for_slow_clients() -> None:
    broadcaster = EventBroadcaster("overlay", max_queue_size=1)
    slow = broadcaster.subscribe()
    fast = broadcaster.subscribe()

    assert broadcaster.publish({"n": 1}) == 2
    fast.get_nowait()
    assert broadcaster.publish({"n": 2}) == 1
    assert slow.get_nowait() == {"n": 1}
    assert fast.get_nowait() == {"n": 2}

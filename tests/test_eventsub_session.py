try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import json
from typing import Any, Dict

import pytest

from fakes import make_settings
from twitchfax.clients.eventsub import SUBSCRIPTIONS, EventSubSession
from twitchfax.clients.helix import HelixAPIError


class RecordingAPIClient:
    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self.failing = failing
        self.calls: list[Dict[str, Any]] = []

    async def create_eventsub_subscription(self, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(kwargs)
        if kwargs["subscription_type"] in self.failing:
            raise HelixAPIError("missing scope", 403)
        return {"id": f"sub-{len(self.calls)}"}


class RecordingDispatcher:
    def __init__(self) -> None:
        self.dispatched: list[tuple[str, Dict[str, Any]]] = []

    async def dispatch(self, subscription_type: str, payload: Dict[str, Any]) -> bool:
        self.dispatched.append((subscription_type, payload))
        return True


class ScriptedSocket:
    def __init__(self, frames: list[Any]) -> None:
        self.frames = frames
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame

    async def close(self) -> None:
        self.closed = True


class ScriptedConnect:
    """Hands out one scripted socket per connection attempt."""

    def __init__(self, sockets: list[ScriptedSocket]) -> None:
        self.sockets = sockets
        self.urls: list[str] = []

    def __call__(self, url: str, **kwargs: Any) -> "ScriptedConnect":
        self.urls.append(url)
        return self

    async def __aenter__(self) -> ScriptedSocket:
        return self.sockets.pop(0)

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


def _welcome(session_id: str = "session-1") -> str:
    return json.dumps(
        {
            "metadata": {"message_type": "session_welcome"},
            "payload": {"session": {"id": session_id}},
        }
    )


def _notification(subscription_type: str, event: Dict[str, Any]) -> str:
    return json.dumps(
        {
            "metadata": {"message_type": "notification", "subscription_type": subscription_type},
            "payload": {"subscription": {"type": subscription_type}, "event": event},
        }
    )


def _session(tmp_path, api: RecordingAPIClient, dispatcher: RecordingDispatcher, connect=None):
    settings = make_settings(tmp_path, TWITCH_USER_ID="1234")
    kwargs = {"connect": connect} if connect is not None else {}
    return EventSubSession(api, settings, dispatcher, **kwargs)


@pytest.mark.anyio
async def test_welcome_subscribes_to_every_type(tmp_path) -> None:
    api = RecordingAPIClient()
    session = _session(tmp_path, api, RecordingDispatcher())

    await session.handle_message(json.loads(_welcome()))

    assert session.session_id == "session-1"
    assert len(api.calls) == len(SUBSCRIPTIONS) == 11
    follow = next(call for call in api.calls if call["subscription_type"] == "channel.follow")
    assert follow["version"] == "2"
    assert follow["condition"] == {"broadcaster_user_id": "1234", "moderator_user_id": "1234"}
    assert all(call["session_id"] == "session-1" for call in api.calls)
    raid = next(call for call in api.calls if call["subscription_type"] == "channel.raid")
    assert raid["condition"] == {"to_broadcaster_user_id": "1234"}


@pytest.mark.anyio
async def test_failed_subscription_does_not_stop_the_rest(tmp_path) -> None:
    api = RecordingAPIClient(failing=("channel.cheer",))
    session = _session(tmp_path, api, RecordingDispatcher())

    await session.handle_message(json.loads(_welcome()))

    assert len(api.calls) == 11
    assert "channel.cheer" not in session.subscribed
    assert len(session.subscribed) == 10


@pytest.mark.anyio
async def test_notification_is_dispatched(tmp_path) -> None:
    dispatcher = RecordingDispatcher()
    session = _session(tmp_path, RecordingAPIClient(), dispatcher)

    result = await session.handle_message(
        json.loads(_notification("channel.follow", {"user_id": "1", "user_name": "fan"}))
    )

    assert result is None
    assert dispatcher.dispatched == [("channel.follow", {"user_id": "1", "user_name": "fan"})]


@pytest.mark.anyio
async def test_reconnect_message_returns_new_url(tmp_path) -> None:
    session = _session(tmp_path, RecordingAPIClient(), RecordingDispatcher())

    url = await session.handle_message(
        {
            "metadata": {"message_type": "session_reconnect"},
            "payload": {"session": {"id": "s", "reconnect_url": "wss://example.test/ws?id=2"}},
        }
    )

    assert url == "wss://example.test/ws?id=2"


@pytest.mark.anyio
async def test_run_follows_reconnect_without_resubscribing(tmp_path) -> None:
    api = RecordingAPIClient()
    dispatcher = RecordingDispatcher()
    reconnect = json.dumps(
        {
            "metadata": {"message_type": "session_reconnect"},
            "payload": {"session": {"id": "session-1", "reconnect_url": "wss://example.test/2"}},
        }
    )
    connect = ScriptedConnect(
        [
            ScriptedSocket([_welcome(), "not json", reconnect]),
            ScriptedSocket(
                [_welcome("session-2"), _notification("stream.offline", {"broadcaster_user_id": "1"})]
            ),
        ]
    )
    session = _session(tmp_path, api, dispatcher, connect=connect)

    await session.run()

    assert connect.urls == ["wss://eventsub.wss.twitch.tv/ws", "wss://example.test/2"]
    assert len(api.calls) == 11
    assert session.session_id == "session-2"
    assert dispatcher.dispatched == [("stream.offline", {"broadcaster_user_id": "1"})]

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
from types import SimpleNamespace

import httpx
import pytest
from PIL import Image

from fakes import make_settings
from twitchfax import dependencies
from twitchfax.core.config import get_settings
from twitchfax.main import app
from twitchfax.services.fax_store import FaxStore
from twitchfax.services.status import PrinterStatus, StreamStatus


class RecordingDispatcher:
    def __init__(self) -> None:
        self.dispatched: list[tuple[str, dict]] = []

    async def dispatch(self, subscription_type: str, payload: dict) -> bool:
        self.dispatched.append((subscription_type, payload))
        return True


@pytest.fixture()
def overlay_overrides(tmp_path):
    settings = copy.deepcopy(get_settings())
    settings.server.debug_mode = True
    dispatcher = RecordingDispatcher()
    manager = make_settings(tmp_path, TRIGGER_CUSTOM_REWORD_ID="fax-reward")
    store = FaxStore(tmp_path / "output", ttl_seconds=60)

    app.dependency_overrides.update(
        {
            dependencies.get_app_settings: lambda: settings,
            dependencies.get_event_dispatcher: lambda: dispatcher,
            dependencies.get_settings_manager: lambda: manager,
            dependencies.get_fax_store: lambda: store,
            dependencies.get_printer_status: lambda: PrinterStatus(),
            dependencies.get_stream_status: lambda: StreamStatus(),
        }
    )

    yield settings, dispatcher, store

    app.dependency_overrides.clear()
    store.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.anyio
async def test_debug_follow_is_dispatched(overlay_overrides):
    _, dispatcher, _ = overlay_overrides

    async with _client() as client:
        response = await client.post("/debug/follow", json={"username": "Tester"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "type": "channel.follow", "handled": True}
    assert dispatcher.dispatched[0][1]["user_name"] == "Tester"


@pytest.mark.anyio
async def test_debug_redemption_uses_configured_reward(overlay_overrides):
    _, dispatcher, _ = overlay_overrides

    async with _client() as client:
        response = await client.post("/debug/redemption", json={"message": "hi"})

    assert response.status_code == 200
    subscription_type, payload = dispatcher.dispatched[0]
    assert subscription_type == "channel.channel_points_custom_reward_redemption.add"
    assert payload["reward"]["id"] == "fax-reward"
    assert payload["user_input"] == "hi"


@pytest.mark.anyio
async def test_debug_routes_hidden_unless_enabled(overlay_overrides):
    settings, dispatcher, _ = overlay_overrides
    settings.server.debug_mode = False

    async with _client() as client:
        hidden = await client.post("/debug/follow")
    settings.server.debug_mode = True
    async with _client() as client:
        unknown = await client.post("/debug/unknown")

    assert hidden.status_code == 404
    assert unknown.status_code == 404
    assert dispatcher.dispatched == []


@pytest.mark.anyio
async def test_fax_images_are_served_until_removed(overlay_overrides):
    _, _, store = overlay_overrides
    fax = store.save(
        "viewer", "hello", Image.new("RGB", (384, 10), "white"), Image.new("1", (384, 10), 1)
    )

    async with _client() as client:
        color = await client.get(f"/fax/{fax.id}/color")
        bad_type = await client.get(f"/fax/{fax.id}/sepia")
        store.remove(fax.id)
        gone = await client.get(f"/fax/{fax.id}/mono")

    assert color.status_code == 200
    assert color.headers["content-type"] == "image/png"
    assert color.content.startswith(b"\x89PNG")
    assert bad_type.status_code == 400
    assert gone.status_code == 404


@pytest.mark.anyio
async def test_status_summary(overlay_overrides):
    async with _client() as client:
        response = await client.get("/status")

    assert response.status_code == 200
    body = response.json()
    assert body["printerConnected"] is False
    assert body["stream"]["is_live"] is False
    assert body["dryRun"] is True


class FakeClock:
    def __init__(self) -> None:
        self.printed = 0

    async def print_now(self):
        self.printed += 1
        return SimpleNamespace(id="clock-fax")


@pytest.mark.anyio
async def test_debug_clock_prints_clock_card(overlay_overrides):
    settings, dispatcher, _ = overlay_overrides
    clock = FakeClock()
    app.dependency_overrides[dependencies.get_clock_printer] = lambda: clock

    async with _client() as client:
        printed = await client.post("/debug/clock")
        settings.server.debug_mode = False
        hidden = await client.post("/debug/clock")

    assert printed.status_code == 200
    assert printed.json() == {"status": "ok", "type": "clock", "faxId": "clock-fax"}
    assert hidden.status_code == 404
    assert clock.printed == 1
    assert dispatcher.dispatched == []

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import threading

import pytest
from PIL import Image

from fakes import DefaultFontProvider, FakePrinterClient, make_settings
from twitchfax.schemas.events import MessageFragment
from twitchfax.services.broadcast import EventBroadcaster
from twitchfax.services.event_handlers import EventDispatcher, EventHandlers
from twitchfax.services.fax_store import FaxStore
from twitchfax.services.print_pipeline import PrintPipeline
from twitchfax.services.printer import PrinterService
from twitchfax.services.rendering import PAPER_WIDTH, FaxRenderer, split_fragments, to_monochrome
from twitchfax.services.status import PrinterStatus, StreamStatus


@pytest.fixture(autouse=True)
def _reset_fake_printers():
    FakePrinterClient.instances.clear()
    yield
    FakePrinterClient.instances.clear()


def _pipeline(tmp_path, **settings):
    manager = make_settings(tmp_path, **settings)
    store = FaxStore(tmp_path / "output", ttl_seconds=60)
    broadcaster = EventBroadcaster("overlay")
    printer = PrinterService(manager, PrinterStatus(), client_factory=FakePrinterClient)
    pipeline = PrintPipeline(FaxRenderer(DefaultFontProvider()), store, manager, broadcaster, printer)
    return pipeline, store, broadcaster, printer, manager


@pytest.mark.anyio
async def test_dry_run_follow_saves_images_without_touching_printer(tmp_path) -> None:
    pipeline, store, broadcaster, printer, manager = _pipeline(
        tmp_path, DRY_RUN_MODE="true", PRINTER_ADDRESS="AA:BB:CC:DD:EE:FF"
    )
    handlers = EventHandlers(pipeline, manager, StreamStatus(), broadcaster)
    dispatcher = EventDispatcher(handlers.routes())
    queue = broadcaster.subscribe()
    worker = asyncio.create_task(printer.run_worker())
    try:
        handled = await dispatcher.dispatch(
            "channel.follow",
            {
                "user_id": "42",
                "user_login": "alice",
                "user_name": "alice",
                "broadcaster_user_id": "1",
                "followed_at": "2024-01-01T00:00:00Z",
            },
        )
        await asyncio.wait_for(printer.drain(), timeout=5)
    finally:
        worker.cancel()
        await asyncio.gather(worker, return_exceptions=True)

    assert handled is True
    event = queue.get_nowait()
    assert event["type"] == "fax"
    assert event["username"] == "alice"
    assert event["message"] == "Thanks for the follow!"
    fax = store.get(event["id"])
    assert fax is not None
    assert fax.color_path.exists() and fax.mono_path.exists()
    with Image.open(fax.color_path) as color, Image.open(fax.mono_path) as mono:
        assert color.width == PAPER_WIDTH
        assert mono.mode == "1"
    assert FakePrinterClient.instances == []
    assert printer.connected is False
    store.clear()


class ThreadRecordingRenderer(FaxRenderer):
    def __init__(self) -> None:
        super().__init__(DefaultFontProvider())
        self.threads: set[int] = set()

    def render_titled(self, *args, **kwargs):
        self.threads.add(threading.get_ident())
        return super().render_titled(*args, **kwargs)


@pytest.mark.anyio
async def test_rendering_runs_off_the_event_loop(tmp_path) -> None:
    manager = make_settings(tmp_path, DRY_RUN_MODE="true")
    renderer = ThreadRecordingRenderer()
    store = FaxStore(tmp_path / "output", ttl_seconds=60)
    printer = PrinterService(manager, PrinterStatus(), client_factory=FakePrinterClient)
    pipeline = PrintPipeline(renderer, store, manager, EventBroadcaster("overlay"), printer)

    fax = await pipeline.print_out_with_title("Thanks for the raid!", "raider", "12 viewers")

    assert renderer.threads
    assert threading.get_ident() not in renderer.threads
    assert store.get(fax.id) is fax
    assert printer.pending_jobs == 1
    store.clear()


@pytest.mark.anyio
async def test_live_print_goes_to_printer(tmp_path) -> None:
    pipeline, store, _, printer, _ = _pipeline(
        tmp_path, DRY_RUN_MODE="false", PRINTER_ADDRESS="AA:BB:CC:DD:EE:FF"
    )
    worker = asyncio.create_task(printer.run_worker())
    try:
        await pipeline.print_out("viewer", [MessageFragment(type="text", text="hello")])
        await asyncio.wait_for(printer.drain(), timeout=5)
    finally:
        worker.cancel()
        await asyncio.gather(worker, return_exceptions=True)

    assert len(FakePrinterClient.instances) == 1
    client = FakePrinterClient.instances[0]
    assert client.address == "AA:BB:CC:DD:EE:FF"
    assert len(client.printed) == 1
    assert printer.connected is True
    store.clear()


@pytest.mark.anyio
async def test_missing_printer_address_drops_job(tmp_path) -> None:
    _, _, _, printer, _ = _pipeline(tmp_path, DRY_RUN_MODE="false")

    printed = await printer.print_image(Image.new("1", (PAPER_WIDTH, 10), 1))

    assert printed is False
    assert FakePrinterClient.instances == []


def test_urls_are_split_out_of_messages() -> None:
    items = split_fragments(
        [
            MessageFragment(type="text", text="look at https://example.com/a now "),
            MessageFragment(type="emote", text="Kappa"),
        ]
    )

    assert items == [("text", "look at"), ("url", "https://example.com/a"), ("text", "now Kappa")]


def test_black_point_controls_threshold() -> None:
    gray = Image.new("RGB", (4, 4), (100, 100, 100))

    dark = to_monochrome(gray, dither=False, black_point=128)
    light = to_monochrome(gray, dither=False, black_point=50)

    assert dark.getpixel((0, 0)) == 0
    assert light.getpixel((0, 0)) == 255


def test_orientation_follows_settings(tmp_path) -> None:
    manager = make_settings(tmp_path, AUTO_ROTATE="true", ROTATE_PRINT="false")
    printer = PrinterService(manager, PrinterStatus(), client_factory=FakePrinterClient)

    rotated = printer.orient(Image.new("1", (200, 100), 1))

    assert rotated.size == (100, 200)

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import pytest
from PIL import Image

from twitchfax.clients.cat_printer import (
    CatPrinterClient,
    Command,
    PrinterNotConnectedError,
    build_packet,
    build_print_job,
    crc8,
    image_rows,
)


class FakeBleakClient:
    def __init__(self, address: str, timeout: float = 10.0) -> None:
        self.address = address
        self.is_connected = False
        self.writes: list[bytes] = []

    async def connect(self) -> None:
        self.is_connected = True

    async def disconnect(self) -> None:
        self.is_connected = False

    async def write_gatt_char(self, characteristic: str, data: bytes, response: bool = True) -> None:
        self.writes.append(bytes(data))


def test_crc8_matches_reference_values() -> None:
    assert crc8(b"") == 0
    assert crc8(bytes([0x01])) == 0x07
    assert crc8(b"123456789") == 0xF4


def test_packet_framing() -> None:
    packet = build_packet(Command.FEED_PAPER, bytes([0x50, 0x00]))

    assert packet[:6] == bytes([0x51, 0x78, 0xA1, 0x00, 0x02, 0x00])
    assert packet[6:8] == bytes([0x50, 0x00])
    assert packet[8] == crc8(bytes([0x50, 0x00]))
    assert packet[-1] == 0xFF


def test_rows_are_inverted_and_bit_reversed() -> None:
    image = Image.new("1", (384, 2), 1)
    image.putpixel((0, 0), 0)

    rows = image_rows(image)

    assert len(rows) == 2
    assert rows[0][0] == 0x01
    assert rows[0][1:] == bytes(47)
    assert rows[1] == bytes(48)


def test_wide_images_are_scaled_to_print_width() -> None:
    rows = image_rows(Image.new("L", (768, 100), 0))

    assert len(rows) == 50
    assert rows[0] == bytes([0xFF]) * 48


def test_print_job_contains_one_bitmap_packet_per_row() -> None:
    job = build_print_job(Image.new("1", (384, 3), 0), best_quality=False)

    bitmap_header = bytes([0x51, 0x78, Command.DRAW_BITMAP, 0x00, 48, 0x00])
    assert job.count(bitmap_header) == 3
    assert job.startswith(build_packet(Command.SET_QUALITY, bytes([0x33])))


@pytest.mark.anyio
async def test_client_writes_job_in_chunks() -> None:
    client = CatPrinterClient("AA:BB:CC:DD:EE:FF", client_factory=FakeBleakClient)

    with pytest.raises(PrinterNotConnectedError):
        await client.print_image(Image.new("1", (384, 1), 1))

    await client.connect()
    image = Image.new("1", (384, 4), 0)
    await client.print_image(image)

    ble = client._client
    assert b"".join(ble.writes) == build_print_job(image)
    assert all(len(chunk) <= 180 for chunk in ble.writes)

    await client.disconnect()
    assert client.is_connected is False

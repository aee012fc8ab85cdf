try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import re
import time

import pytest
from PIL import Image

from twitchfax.services.fax_store import FAX_ID_LENGTH, FaxStore, new_fax_id


def _images() -> tuple[Image.Image, Image.Image]:
    return Image.new("RGB", (384, 100), "white"), Image.new("1", (384, 100), 1)


def test_save_writes_both_images(tmp_path) -> None:
    store = FaxStore(tmp_path / "output", ttl_seconds=60)

    fax = store.save("viewer", "hello", *_images())

    assert fax.color_path.exists() and fax.mono_path.exists()
    assert store.get_image_path(fax.id, "color") == fax.color_path
    assert store.get_image_path(fax.id, "mono") == fax.mono_path
    event = fax.to_event()
    assert event["type"] == "fax"
    assert event["imageUrl"] == f"/fax/{fax.id}/color"
    assert event["username"] == "viewer"
    store.clear()


def test_unknown_image_type_is_rejected(tmp_path) -> None:
    store = FaxStore(tmp_path, ttl_seconds=60)
    fax = store.save("viewer", "hello", *_images())

    with pytest.raises(ValueError):
        store.get_image_path(fax.id, "sepia")
    store.clear()


def test_expired_fax_is_removed_on_lookup(tmp_path, monkeypatch) -> None:
    store = FaxStore(tmp_path, ttl_seconds=60)
    fax = store.save("viewer", "hello", *_images())
    later = time.monotonic() + 61
    monkeypatch.setattr("twitchfax.services.fax_store.time.monotonic", lambda: later)

    assert store.get(fax.id) is None
    assert not fax.color_path.exists()
    assert len(store) == 0


@pytest.mark.anyio
async def test_fax_is_deleted_when_ttl_elapses(tmp_path) -> None:
    store = FaxStore(tmp_path, ttl_seconds=0.05)
    fax = store.save("viewer", "hello", *_images())

    await asyncio.sleep(0.2)

    assert len(store) == 0
    assert not fax.mono_path.exists()
    assert store.get_image_path(fax.id, "color") is None


def test_remove_unknown_fax_returns_false(tmp_path) -> None:
    assert FaxStore(tmp_path).remove("missing") is False


def test_fax_ids_are_short_url_safe_strings(tmp_path) -> None:
    ids = {new_fax_id() for _ in range(50)}

    assert len(ids) == 50
    for fax_id in ids:
        assert len(fax_id) == FAX_ID_LENGTH == 21
        assert re.fullmatch(r"[A-Za-z0-9_-]+", fax_id)
    assert len(FaxStore(tmp_path, ttl_seconds=60).save("viewer", "hi", *_images()).id) == 21


@pytest.mark.anyio
async def test_async_save_writes_images_and_expires(tmp_path) -> None:
    store = FaxStore(tmp_path, ttl_seconds=0.05)

    fax = await store.save_async("viewer", "hello", *_images())

    assert fax.color_path.exists() and fax.mono_path.exists()
    assert store.get(fax.id) is fax
    await asyncio.sleep(0.2)
    assert store.get(fax.id) is None
    assert not fax.color_path.exists()

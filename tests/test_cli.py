try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
import logging
import sys
from types import SimpleNamespace

import pytest

import twitchfax.__main__ as cli
from twitchfax.core.config import get_settings
from twitchfax.core.logging import LOG_FORMAT, LogBufferHandler
from twitchfax.dependencies import get_log_buffer


class FakeServer:
    def __init__(self, config) -> None:
        self.config = config
        self.started = False

    def run(self) -> None:
        self.started = True


@pytest.fixture()
def fake_server(monkeypatch, tmp_path):
    configs: list[dict] = []

    def make_config(app, **kwargs):
        configs.append(kwargs)
        return SimpleNamespace(app=app, **kwargs)

    settings = copy.deepcopy(get_settings())
    settings.storage.data_dir = tmp_path
    settings.oauth.redirect_uri = None
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "uvicorn", SimpleNamespace(Config=make_config, Server=FakeServer))

    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    return settings, configs


def test_main_logs_to_stdout_with_service_format(fake_server) -> None:
    assert cli.main([]) == 0

    handlers = logging.getLogger().handlers
    stream_handlers = [h for h in handlers if isinstance(h, logging.StreamHandler)]
    assert len(stream_handlers) == 1
    assert stream_handlers[0].stream is sys.stdout
    assert stream_handlers[0].formatter._fmt == LOG_FORMAT
    assert any(
        isinstance(h, LogBufferHandler) and h.buffer is get_log_buffer() for h in handlers
    )


def test_port_override_reaches_redirect_uri(fake_server) -> None:
    settings, configs = fake_server

    assert cli.main(["--port", "9123", "--host", "127.0.0.1"]) == 0

    assert configs[0]["port"] == 9123
    assert configs[0]["host"] == "127.0.0.1"
    assert settings.server.port == 9123
    assert settings.redirect_uri == "http://localhost:9123/callback"


def test_unusable_data_dir_exits_with_error(fake_server, monkeypatch) -> None:
    _, configs = fake_server

    def refuse(storage):
        raise PermissionError("read-only file system")

    monkeypatch.setattr(cli, "ensure_data_dirs", refuse)

    assert cli.main([]) == 1
    assert configs == []

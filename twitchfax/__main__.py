"""Command-line entrypoint: ``python -m twitchfax`` or ``twitchfax``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

import uvicorn

from twitchfax.core.config import AppSettings, get_settings
from twitchfax.core.logging import configure_logging
from twitchfax.core.paths import ensure_data_dirs
from twitchfax.dependencies import get_log_buffer

logger = logging.getLogger("twitchfax")


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Twitch fax overlay server.")
    parser.add_argument("--host", help="Override SERVER_HOST.")
    parser.add_argument("--port", type=int, help="Override SERVER_PORT.")
    return parser.parse_args(argv)


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> None:
    """Push command-line overrides into the shared settings object.

    The OAuth redirect URI and the printed auth URL are derived from
    ``settings.server.port``, so the override has to land there before the
    app and its clients are built.
    """
    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    apply_overrides(settings, args)
    configure_logging(settings.log_level, buffer=get_log_buffer())

    try:
        ensure_data_dirs(settings.storage)
    except OSError as exc:
        logger.error("Cannot create data directory %s: %s", settings.storage.data_dir, exc)
        return 1

    from twitchfax.main import app

    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
    server = uvicorn.Server(config)
    server.run()
    if not server.started:
        logger.error("Server failed to start")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

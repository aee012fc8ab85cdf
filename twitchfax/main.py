"""
FastAPI application entrypoint for the Twitch fax overlay.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse

from twitchfax import __version__
from twitchfax.api.music import router as music_router
from twitchfax.api.overlay import router as overlay_router
from twitchfax.api.routes import router as api_router
from twitchfax.core.config import get_settings
from twitchfax.core.logging import configure_logging
from twitchfax.dependencies import get_log_buffer
from twitchfax.runtime import OverlayRuntime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    runtime = OverlayRuntime.from_dependencies()
    await runtime.start()
    app.state.runtime = runtime
    try:
        yield
    finally:
        await runtime.stop()


def _mount_frontend(app: FastAPI, dist_dir: Optional[Path]) -> None:
    """Serve the built web UI, falling back to index.html for client routes."""
    if dist_dir is None or not dist_dir.is_dir():
        logger.info("No web UI build directory configured; serving the API only")
        return
    root = dist_dir.resolve()
    index = root / "index.html"

    @app.get("/{full_path:path}", include_in_schema=False)
    async def serve_frontend(full_path: str) -> FileResponse:
        if full_path.startswith("api/"):
            raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Not Found")
        candidate = (root / full_path).resolve()
        if full_path and candidate.is_file() and candidate.is_relative_to(root):
            return FileResponse(candidate)
        if not index.is_file():
            raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Not Found")
        return FileResponse(index)


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level, buffer=get_log_buffer())

    app = FastAPI(
        title="Twitch Fax Overlay",
        version=__version__,
        description="Prints Twitch channel events on a thermal printer and a browser overlay.",
        lifespan=lifespan,
    )
    app.include_router(overlay_router)
    app.include_router(api_router, prefix="/api")
    app.include_router(music_router, prefix="/api")
    _mount_frontend(app, settings.server.web_dist_dir)
    return app


app = create_app()

__all__ = ["app", "create_app"]

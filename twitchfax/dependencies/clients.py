"""
Factory functions that build the shared clients and services.

Each factory is cached so the web routes and the background runtime share one
instance of every component. Tests replace them through
``app.dependency_overrides``.
"""

import secrets
from functools import lru_cache

from twitchfax.clients.eventsub import EventSubSession
from twitchfax.clients.helix import TwitchAPIClient
from twitchfax.clients.sqlite_store import SQLiteStore
from twitchfax.clients.twitch_auth import OAuthStateEncoder, TwitchOAuthClient
from twitchfax.core.logging import LogBuffer
from twitchfax.dependencies.config import get_app_settings
from twitchfax.services.broadcast import EventBroadcaster
from twitchfax.services.clock import ClockPrinter
from twitchfax.services.event_handlers import EventDispatcher, EventHandlers
from twitchfax.services.fax_store import FaxStore
from twitchfax.services.fonts import FontManager
from twitchfax.services.music import MusicController, MusicLibrary
from twitchfax.services.print_pipeline import PrintPipeline
from twitchfax.services.printer import PrinterService
from twitchfax.services.rendering import FaxRenderer
from twitchfax.services.settings import SettingsManager
from twitchfax.services.status import PrinterStatus, StreamStatus
from twitchfax.services.token_cipher import TokenCipherService
from twitchfax.services.twitch_tokens import TwitchTokenService


@lru_cache()
def get_log_buffer() -> LogBuffer:
    """Provide the in-memory buffer behind the logs API."""
    return LogBuffer(max_entries=1000)


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide the shared SQLite database."""
    return SQLiteStore(get_app_settings().storage.db_path)


@lru_cache()
def get_settings_manager() -> SettingsManager:
    return SettingsManager(get_sqlite_store())


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide the token encryption helper (a no-op without a secret)."""
    return TokenCipherService(secret=get_app_settings().security.token_encryption_secret)


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    settings = get_app_settings()
    secret = settings.security.token_encryption_secret or secrets.token_hex(32)
    return OAuthStateEncoder(secret_key=secret)


@lru_cache()
def get_twitch_oauth_client() -> TwitchOAuthClient:
    settings = get_app_settings()
    return TwitchOAuthClient(get_settings_manager(), settings.oauth, settings.redirect_uri)


@lru_cache()
def get_token_service() -> TwitchTokenService:
    return TwitchTokenService(
        store=get_sqlite_store(),
        oauth_client=get_twitch_oauth_client(),
        token_cipher=get_token_cipher_service(),
    )


@lru_cache()
def get_twitch_api_client() -> TwitchAPIClient:
    return TwitchAPIClient(
        get_token_service(),
        get_settings_manager(),
        timeout=get_app_settings().oauth.http_timeout_seconds,
    )


@lru_cache()
def get_overlay_broadcaster() -> EventBroadcaster:
    return EventBroadcaster("overlay")


@lru_cache()
def get_music_control_broadcaster() -> EventBroadcaster:
    return EventBroadcaster("music-control")


@lru_cache()
def get_music_status_broadcaster() -> EventBroadcaster:
    return EventBroadcaster("music-status")


@lru_cache()
def get_printer_status() -> PrinterStatus:
    status = PrinterStatus()
    broadcaster = get_overlay_broadcaster()
    status.add_listener(
        lambda connected: broadcaster.publish(
            {"type": "printer_status", "data": {"connected": connected}}
        )
    )
    return status


@lru_cache()
def get_stream_status() -> StreamStatus:
    return StreamStatus()


@lru_cache()
def get_font_manager() -> FontManager:
    return FontManager(get_app_settings().storage.fonts_dir)


@lru_cache()
def get_fax_renderer() -> FaxRenderer:
    return FaxRenderer(get_font_manager())


@lru_cache()
def get_fax_store() -> FaxStore:
    return FaxStore(get_app_settings().storage.output_dir)


@lru_cache()
def get_printer_service() -> PrinterService:
    return PrinterService(get_settings_manager(), get_printer_status())


@lru_cache()
def get_print_pipeline() -> PrintPipeline:
    return PrintPipeline(
        renderer=get_fax_renderer(),
        fax_store=get_fax_store(),
        settings=get_settings_manager(),
        broadcaster=get_overlay_broadcaster(),
        printer=get_printer_service(),
    )


@lru_cache()
def get_event_handlers() -> EventHandlers:
    return EventHandlers(
        pipeline=get_print_pipeline(),
        settings=get_settings_manager(),
        stream_status=get_stream_status(),
        broadcaster=get_overlay_broadcaster(),
    )


@lru_cache()
def get_event_dispatcher() -> EventDispatcher:
    return EventDispatcher(get_event_handlers().routes())


def get_eventsub_session() -> EventSubSession:
    """Build a fresh EventSub session; one is opened per authenticated run."""
    return EventSubSession(get_twitch_api_client(), get_settings_manager(), get_event_dispatcher())


@lru_cache()
def get_clock_printer() -> ClockPrinter:
    return ClockPrinter(get_print_pipeline(), get_settings_manager(), get_twitch_api_client())


@lru_cache()
def get_music_library() -> MusicLibrary:
    return MusicLibrary(get_sqlite_store(), get_app_settings().storage.uploads_dir / "music")


@lru_cache()
def get_music_controller() -> MusicController:
    return MusicController(get_music_control_broadcaster(), get_music_status_broadcaster())


__all__ = [
    "get_clock_printer",
    "get_event_dispatcher",
    "get_event_handlers",
    "get_eventsub_session",
    "get_fax_renderer",
    "get_fax_store",
    "get_font_manager",
    "get_log_buffer",
    "get_music_control_broadcaster",
    "get_music_controller",
    "get_music_library",
    "get_music_status_broadcaster",
    "get_oauth_state_encoder",
    "get_overlay_broadcaster",
    "get_print_pipeline",
    "get_printer_service",
    "get_printer_status",
    "get_settings_manager",
    "get_sqlite_store",
    "get_stream_status",
    "get_token_cipher_service",
    "get_token_service",
    "get_twitch_api_client",
    "get_twitch_oauth_client",
]

"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_clock_printer,
    get_event_dispatcher,
    get_event_handlers,
    get_eventsub_session,
    get_fax_renderer,
    get_fax_store,
    get_font_manager,
    get_log_buffer,
    get_music_control_broadcaster,
    get_music_controller,
    get_music_library,
    get_music_status_broadcaster,
    get_oauth_state_encoder,
    get_overlay_broadcaster,
    get_print_pipeline,
    get_printer_service,
    get_printer_status,
    get_settings_manager,
    get_sqlite_store,
    get_stream_status,
    get_token_cipher_service,
    get_token_service,
    get_twitch_api_client,
    get_twitch_oauth_client,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
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

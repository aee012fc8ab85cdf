"""
Process-level configuration models and helpers.

Only values needed before the database is available live here. Twitch
credentials and printer options are stored in SQLite and managed by
``twitchfax.services.settings``.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        os.environ[key] = value.strip().strip('"').strip("'")


_load_env_file()

_SETTINGS_CONFIG = SettingsConfigDict(extra="ignore", populate_by_name=True)


class ServerSettings(BaseSettings):
    """HTTP server options."""

    model_config = _SETTINGS_CONFIG

    host: str = Field("0.0.0.0", validation_alias="SERVER_HOST")
    port: int = Field(8080, validation_alias="SERVER_PORT")
    web_dist_dir: Optional[Path] = Field(
        None,
        validation_alias="WEB_DIST_DIR",
        description="Directory holding the built overlay front-end.",
    )
    debug_mode: bool = Field(
        False,
        validation_alias="DEBUG_MODE",
        description="Expose the /debug endpoints that inject synthetic events.",
    )


class StorageSettings(BaseSettings):
    """Locations of the database, fonts, uploads and rendered faxes."""

    model_config = _SETTINGS_CONFIG

    data_dir: Path = Field(
        Path.home() / ".twitch-overlay", validation_alias="TWITCH_OVERLAY_DATA_DIR"
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()

    @property
    def db_path(self) -> Path:
        return self.data_dir / "local.db"

    @property
    def fonts_dir(self) -> Path:
        return self.data_dir / "fonts"

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def output_dir(self) -> Path:
        return self.data_dir / "output"


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _SETTINGS_CONFIG

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Optional secret used to derive the key encrypting stored Twitch tokens."
        ),
    )


class OAuthSettings(BaseSettings):
    """Twitch OAuth flow configuration."""

    model_config = _SETTINGS_CONFIG

    redirect_uri: Optional[str] = Field(
        None,
        validation_alias="TWITCH_REDIRECT_URI",
        description="Defaults to http://localhost:<SERVER_PORT>/callback.",
    )
    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    http_timeout_seconds: float = Field(10.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "user:read:chat",
            "user:read:email",
            "channel:read:subscriptions",
            "bits:read",
            "chat:read",
            "chat:edit",
            "moderator:read:followers",
            "channel:manage:redemptions",
            "moderator:manage:shoutouts",
        ),
        validation_alias="OAUTH_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma- or space-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope for scope in value.replace(",", " ").split() if scope)


class AppSettings(BaseSettings):
    """Root settings object for the service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    server: ServerSettings = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)

    @property
    def redirect_uri(self) -> str:
        return self.oauth.redirect_uri or f"http://localhost:{self.server.port}/callback"


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "OAuthSettings",
    "SecuritySettings",
    "ServerSettings",
    "StorageSettings",
    "get_settings",
]

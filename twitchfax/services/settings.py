"""
Database-backed runtime settings.

Twitch credentials and printer options are editable from the web UI, so they
live in the ``settings`` table rather than in the process environment. The
environment is only consulted once, to seed keys that are not stored yet.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from twitchfax.clients.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class SettingType(str, Enum):
    NORMAL = "normal"
    SECRET = "secret"


@dataclass(frozen=True)
class SettingDefinition:
    key: str
    default: str
    setting_type: SettingType
    required: bool
    description: str


def _definition(
    key: str,
    default: str,
    description: str,
    *,
    secret: bool = False,
    required: bool = False,
) -> SettingDefinition:
    return SettingDefinition(
        key=key,
        default=default,
        setting_type=SettingType.SECRET if secret else SettingType.NORMAL,
        required=required,
        description=description,
    )


DEFAULT_SETTINGS: Dict[str, SettingDefinition] = {
    d.key: d
    for d in (
        _definition("CLIENT_ID", "", "Twitch API client id", secret=True, required=True),
        _definition("CLIENT_SECRET", "", "Twitch API client secret", secret=True, required=True),
        _definition("TWITCH_USER_ID", "", "Broadcaster user id", secret=True, required=True),
        _definition(
            "TRIGGER_CUSTOM_REWORD_ID",
            "",
            "Channel-point reward id that triggers a fax",
            secret=True,
            required=True,
        ),
        _definition("PRINTER_ADDRESS", "", "Bluetooth MAC address of the printer", required=True),
        _definition("DRY_RUN_MODE", "true", "Write images only, never touch the printer"),
        _definition("BEST_QUALITY", "true", "Print at the slowest, darkest setting"),
        _definition("DITHER", "true", "Floyd-Steinberg dithering for monochrome output"),
        _definition("BLACK_POINT", "128", "Monochrome threshold (0-255)"),
        _definition("AUTO_ROTATE", "false", "Rotate landscape images before printing"),
        _definition("ROTATE_PRINT", "true", "Rotate output 180 degrees"),
        _definition("INITIAL_PRINT_ENABLED", "false", "Print a clock card at startup"),
        _definition("KEEP_ALIVE_INTERVAL", "60", "Seconds of idle time before reconnecting (10-3600)"),
        _definition("KEEP_ALIVE_ENABLED", "false", "Periodically reconnect the printer"),
        _definition("CLOCK_ENABLED", "false", "Print a clock card every hour"),
        _definition("DEBUG_OUTPUT", "false", "Verbose logging"),
        _definition("TIMEZONE", "Asia/Tokyo", "Timezone for clock printing"),
    )
}

BOOLEAN_KEYS = frozenset(
    {
        "DRY_RUN_MODE",
        "BEST_QUALITY",
        "DITHER",
        "AUTO_ROTATE",
        "ROTATE_PRINT",
        "INITIAL_PRINT_ENABLED",
        "KEEP_ALIVE_ENABLED",
        "CLOCK_ENABLED",
        "DEBUG_OUTPUT",
    }
)
TWITCH_KEYS = ("CLIENT_ID", "CLIENT_SECRET", "TWITCH_USER_ID", "TRIGGER_CUSTOM_REWORD_ID")

_MAC_ADDRESS = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")
_INT_RANGES = {
    "BLACK_POINT": (0, 255),
    "KEEP_ALIVE_INTERVAL": (10, 3600),
}


class SettingValidationError(ValueError):
    """Raised when a value is not acceptable for a setting."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{key}: {message}")
        self.key = key
        self.message = message


class UnknownSettingError(SettingValidationError):
    """Raised for keys that are not part of the known settings."""

    def __init__(self, key: str) -> None:
        super().__init__(key, "unknown setting")


def validate_setting(key: str, value: str) -> None:
    """Validate ``value`` for ``key`` or raise :class:`SettingValidationError`."""
    if key not in DEFAULT_SETTINGS:
        raise UnknownSettingError(key)

    if key in BOOLEAN_KEYS:
        if value not in ("true", "false"):
            raise SettingValidationError(key, "must be 'true' or 'false'")
        return

    if key in _INT_RANGES:
        low, high = _INT_RANGES[key]
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise SettingValidationError(key, "must be an integer") from exc
        if not low <= number <= high:
            raise SettingValidationError(key, f"must be between {low} and {high}")
        return

    if key == "PRINTER_ADDRESS":
        if value and not _MAC_ADDRESS.match(value):
            raise SettingValidationError(key, "must be a MAC address like AA:BB:CC:DD:EE:FF")
        return

    if key == "TIMEZONE":
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise SettingValidationError(key, f"unknown timezone {value!r}") from exc


class SettingsManager:
    """Read, validate and persist runtime settings.

    Values are always read through to the database so a change made from the
    web UI is seen by the next print job without a restart.
    """

    def __init__(self, store: SQLiteStore) -> None:
        self._store = store

    def initialize_defaults(self) -> list[str]:
        """Insert a default row for every known key that is not stored yet."""
        inserted = []
        for definition in DEFAULT_SETTINGS.values():
            if self._store.insert_setting_if_missing(
                key=definition.key,
                value=definition.default,
                setting_type=definition.setting_type.value,
                is_required=definition.required,
                description=definition.description,
            ):
                inserted.append(definition.key)
        return inserted

    def migrate_from_env(self, environ: Optional[Mapping[str, str]] = None) -> list[str]:
        """Copy known keys from the environment without overwriting stored values."""
        env = os.environ if environ is None else environ
        migrated: list[str] = []
        secrets_found: list[str] = []
        for definition in DEFAULT_SETTINGS.values():
            value = env.get(definition.key)
            if value is None or value == "":
                continue
            if definition.setting_type is SettingType.SECRET:
                secrets_found.append(definition.key)
            if self._store.get_setting(definition.key) is not None:
                continue
            try:
                validate_setting(definition.key, value)
            except SettingValidationError as exc:
                logger.warning("Skipping invalid environment value: %s", exc)
                continue
            self._store.insert_setting_if_missing(
                key=definition.key,
                value=value,
                setting_type=definition.setting_type.value,
                is_required=definition.required,
                description=definition.description,
            )
            migrated.append(definition.key)

        if migrated:
            logger.info("Migrated %d settings from the environment", len(migrated))
        if secrets_found:
            logger.warning(
                "Secrets found in the environment (%s); they are now stored in the "
                "database and can be removed from the environment",
                ", ".join(secrets_found),
            )
        return migrated

    def get(self, key: str) -> str:
        definition = DEFAULT_SETTINGS.get(key)
        if definition is None:
            raise UnknownSettingError(key)
        row = self._store.get_setting(key)
        if row is None:
            return definition.default
        return row["value"]

    def get_bool(self, key: str) -> bool:
        return self.get(key) == "true"

    def get_int(self, key: str) -> int:
        value = self.get(key)
        try:
            return int(value)
        except ValueError:
            logger.warning("Stored value for %s is not an integer: %r", key, value)
            return int(DEFAULT_SETTINGS[key].default)

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        """Return every known setting merged with its definition."""
        stored = {row["key"]: row for row in self._store.list_settings()}
        result: Dict[str, Dict[str, Any]] = {}
        for key, definition in DEFAULT_SETTINGS.items():
            row = stored.get(key)
            value = row["value"] if row else definition.default
            result[key] = {
                "key": key,
                "value": value,
                "type": definition.setting_type.value,
                "required": definition.required,
                "description": definition.description,
                "has_value": value != "",
                "updated_at": row["updated_at"] if row else None,
            }
        return result

    def validate(self, key: str, value: str) -> None:
        validate_setting(key, value)

    def set(self, key: str, value: str) -> None:
        self.update_many({key: value})

    def update_many(self, values: Mapping[str, str]) -> None:
        """Validate every entry first, then write them in one transaction."""
        errors = []
        for key, value in values.items():
            try:
                validate_setting(key, value)
            except SettingValidationError as exc:
                errors.append(exc)
        if errors:
            raise errors[0]

        rows = []
        for key, value in values.items():
            definition = DEFAULT_SETTINGS[key]
            rows.append(
                {
                    "key": key,
                    "value": value,
                    "setting_type": definition.setting_type.value,
                    "is_required": definition.required,
                    "description": definition.description,
                }
            )
        self._store.upsert_settings(rows)
        logger.info("Updated settings: %s", ", ".join(values.keys()))

    def reset_to_defaults(self, include_secrets: bool = False) -> list[str]:
        """Restore defaults for normal settings (and secrets when asked)."""
        values = {
            key: definition.default
            for key, definition in DEFAULT_SETTINGS.items()
            if include_secrets or definition.setting_type is SettingType.NORMAL
        }
        self.update_many(values)
        return list(values)

    def missing_required(self) -> list[str]:
        return [
            key
            for key, definition in DEFAULT_SETTINGS.items()
            if definition.required and not self.get(key)
        ]

    def twitch_configured(self) -> bool:
        return all(self.get(key) for key in TWITCH_KEYS)

    def feature_status(self, *, printer_connected: bool = False) -> Dict[str, Any]:
        warnings = []
        if self.get_bool("DRY_RUN_MODE"):
            warnings.append("Dry-run mode is enabled; faxes are saved but not printed.")
        printer_configured = bool(self.get("PRINTER_ADDRESS"))
        if not printer_configured:
            warnings.append("No printer address configured.")
        return {
            "twitch_configured": self.twitch_configured(),
            "printer_configured": printer_configured,
            "printer_connected": printer_connected,
            "missing_settings": self.missing_required(),
            "warnings": warnings,
        }


__all__ = [
    "BOOLEAN_KEYS",
    "DEFAULT_SETTINGS",
    "SettingDefinition",
    "SettingType",
    "SettingValidationError",
    "SettingsManager",
    "UnknownSettingError",
    "validate_setting",
]

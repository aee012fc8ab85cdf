"""Check the overlay's process configuration and stored feature settings.

Commands:

``check``
    Load ``AppSettings`` from the given ``.env`` file and report malformed
    values (for example a non-numeric ``SERVER_PORT``).
``status``
    Same validation, then open the settings database and print which
    features are configured (Twitch credentials, printer address) and which
    required settings are still missing.
``record`` / ``verify``
    Store and later compare a checksum of the ``.env`` file to detect
    unexpected edits.

Example usages::

    python -m scripts.check_env status --env-file .env
    python -m scripts.check_env record --env-file .env --hash-file .env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import json
import sqlite3
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from twitchfax.clients.sqlite_store import SQLiteStore
from twitchfax.core.config import AppSettings, _load_env_file
from twitchfax.services.settings import SettingsManager

EXIT_OK = 0
EXIT_MISSING_SETTINGS = 1
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    """Populate the environment from ``env_file`` and build the settings."""
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _report_status(settings: AppSettings) -> int:
    """Print the feature status stored in the settings database."""
    db_path = settings.storage.db_path
    if not db_path.exists():
        print(
            f"No settings database at {db_path}; start the server once to create it.",
            file=sys.stderr,
        )
        return EXIT_MISSING_SETTINGS

    manager = SettingsManager(SQLiteStore(db_path))
    status = manager.feature_status()
    print(json.dumps(status, indent=2))
    if status["missing_settings"]:
        print(
            "Missing required settings: " + ", ".join(status["missing_settings"]),
            file=sys.stderr,
        )
        return EXIT_MISSING_SETTINGS
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate overlay configuration and report feature status."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_env_file(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env).",
        )

    def add_hash_file(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--hash-file",
            required=True,
            type=Path,
            help="Location of the checksum baseline.",
        )

    add_env_file(subparsers.add_parser("check", help="Validate process settings only."))
    add_env_file(
        subparsers.add_parser("status", help="Validate settings and report feature status.")
    )
    record_parser = subparsers.add_parser("record", help="Store the .env checksum baseline.")
    add_env_file(record_parser)
    add_hash_file(record_parser)
    verify_parser = subparsers.add_parser("verify", help="Compare the .env checksum.")
    add_env_file(verify_parser)
    add_hash_file(verify_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    env_file: Path = args.env_file

    if args.command in ("record", "verify") and not env_file.exists():
        print(f"Environment file {env_file} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    handlers: dict[str, Callable[[], int]] = {
        "check": lambda: EXIT_OK,
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "status": lambda: _report_status(settings),
    }
    try:
        return handlers[args.command]()
    except (OSError, sqlite3.Error) as exc:
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())

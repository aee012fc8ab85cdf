"""Filesystem layout helpers."""

from __future__ import annotations

from pathlib import Path

from twitchfax.core.config import StorageSettings


def ensure_data_dirs(storage: StorageSettings) -> list[Path]:
    """Create the data directory tree, returning the directories touched."""
    directories = [
        storage.data_dir,
        storage.fonts_dir,
        storage.uploads_dir,
        storage.uploads_dir / "artwork",
        storage.output_dir,
    ]
    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)
    return directories


__all__ = ["ensure_data_dirs"]

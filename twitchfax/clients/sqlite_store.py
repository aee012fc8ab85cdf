"""SQLite persistence for tokens, settings and the music library."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from twitchfax.models.token import Token

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tokens (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        access_token TEXT NOT NULL,
        refresh_token TEXT NOT NULL,
        scope TEXT NOT NULL DEFAULT '',
        expires_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        setting_type TEXT NOT NULL DEFAULT 'normal',
        is_required INTEGER NOT NULL DEFAULT 0,
        description TEXT NOT NULL DEFAULT '',
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tracks (
        id TEXT PRIMARY KEY,
        filename TEXT NOT NULL,
        title TEXT NOT NULL,
        artist TEXT NOT NULL,
        album TEXT NOT NULL DEFAULT '',
        duration REAL NOT NULL DEFAULT 0,
        has_artwork INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS playlists (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS playlist_tracks (
        playlist_id TEXT NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
        track_id TEXT NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        PRIMARY KEY (playlist_id, track_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS playback_state (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        data TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
)


class SQLiteStore:
    """Single-file database shared by every persistent component."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and always close it."""
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    # tokens

    def insert_token(self, token: Token) -> int:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tokens (access_token, refresh_token, scope, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                (token.access_token, token.refresh_token, token.scope, int(token.expires_at)),
            )
            return int(cursor.lastrowid)

    def latest_token(self) -> Optional[Token]:
        with self.connect() as conn:
            row = conn.execute(
                """
                SELECT access_token, refresh_token, scope, expires_at
                FROM tokens ORDER BY id DESC LIMIT 1
                """
            ).fetchone()
        if not row:
            return None
        return Token(
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            scope=row["scope"],
            expires_at=int(row["expires_at"]),
        )

    def count_tokens(self) -> int:
        with self.connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM tokens").fetchone()[0])

    # settings

    def get_setting(self, key: str) -> Optional[Dict[str, Any]]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM settings WHERE key = ?", (key,)).fetchone()
        return dict(row) if row else None

    def list_settings(self) -> list[Dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM settings ORDER BY key").fetchall()
        return [dict(row) for row in rows]

    def insert_setting_if_missing(
        self,
        *,
        key: str,
        value: str,
        setting_type: str,
        is_required: bool,
        description: str,
    ) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO settings (key, value, setting_type, is_required, description)
                VALUES (?, ?, ?, ?, ?)
                """,
                (key, value, setting_type, int(is_required), description),
            )
            return cursor.rowcount > 0

    def upsert_settings(self, rows: list[Dict[str, Any]]) -> None:
        """Write several settings in one transaction."""
        with self.connect() as conn:
            conn.executemany(
                """
                INSERT INTO settings (key, value, setting_type, is_required, description, updated_at)
                VALUES (:key, :value, :setting_type, :is_required, :description, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                [
                    {**row, "is_required": int(bool(row.get("is_required", False)))}
                    for row in rows
                ],
            )


__all__ = ["SQLiteStore"]

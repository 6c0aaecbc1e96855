"""
Local UI preference storage.

The only state the client keeps between runs is a handful of UI flags
(collapsed columns). Consumers depend on the PreferenceStore protocol so the
persistence side effect can be swapped: SQLitePreferenceStore for real use,
MemoryPreferenceStore for tests and ephemeral sessions.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from pagelm.config import settings

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS preferences (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class PreferenceStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryPreferenceStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class SQLitePreferenceStore:
    """Key/value preferences in a small SQLite file (one connection per call)."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or settings.data_dir / settings.prefs_filename
        self._ready = False

    async def _init(self, db: aiosqlite.Connection) -> None:
        if not self._ready:
            await db.executescript(SCHEMA_SQL)
            self._ready = True

    async def get(self, key: str) -> str | None:
        if not self.path.exists():
            return None
        async with aiosqlite.connect(self.path) as db:
            await self._init(db)
            cursor = await db.execute("SELECT value FROM preferences WHERE key = ?", (key,))
            row = await cursor.fetchone()
        return str(row[0]) if row else None

    async def set(self, key: str, value: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.path) as db:
            await self._init(db)
            await db.execute(
                """INSERT INTO preferences(key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                  updated_at = excluded.updated_at""",
                (key, value, _now()),
            )
            await db.commit()
        logger.debug("Saved preference %s", key)

    async def all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        async with aiosqlite.connect(self.path) as db:
            await self._init(db)
            cursor = await db.execute("SELECT key, value FROM preferences ORDER BY key")
            rows = await cursor.fetchall()
        return {str(r[0]): str(r[1]) for r in rows}

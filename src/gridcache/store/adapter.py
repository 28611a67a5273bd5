"""
Durable Store Adapter.

A thin async wrapper around one SQLite database holding one collection
(a two-column key/value table). Each operation resolves to a single awaitable
result. The connection is opened lazily on first use and kept for the
adapter's lifetime.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite

from gridcache.exceptions import StoreError
from gridcache.logging import get_logger

logger = get_logger(__name__)

DEFAULT_COLLECTION = "ObjectStore"


class DurableStore:
    """Key-value store of text blobs backed by aiosqlite."""

    def __init__(
        self, path: str | Path, collection: str = DEFAULT_COLLECTION
    ) -> None:
        """Initialize the adapter without touching the database.

        Args:
            path: SQLite database path, or ":memory:".
            collection: Table name holding the entries. Must be an identifier.
        """
        if not collection.isidentifier():
            raise ValueError(f"collection must be an identifier, got {collection!r}")
        self.path: str | Path = ":memory:" if str(path) == ":memory:" else Path(path)
        self.collection = collection
        self._db: aiosqlite.Connection | None = None
        self._open_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def _get_db(self) -> aiosqlite.Connection:
        """Open the database and create the collection on first use."""
        if self._db is not None:
            return self._db

        async with self._open_lock:
            if self._db is None:
                try:
                    if isinstance(self.path, Path):
                        self.path.parent.mkdir(parents=True, exist_ok=True)
                    db = await aiosqlite.connect(self.path)
                    await db.execute(
                        f"CREATE TABLE IF NOT EXISTS {self.collection} ("
                        "key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                    )
                    await db.commit()
                except (aiosqlite.Error, OSError) as e:
                    raise StoreError(
                        "Failed to open durable store",
                        context={"path": str(self.path), "error": str(e)},
                    ) from e
                self._db = db
                logger.info(
                    "Durable store opened",
                    path=str(self.path),
                    collection=self.collection,
                )
        return self._db

    async def get(self, key: str) -> str | None:
        """Read the blob stored under ``key``.

        Returns:
            The stored text, or None when the key has no entry.

        Raises:
            StoreError: If the read fails.
        """
        db = await self._get_db()
        try:
            async with db.execute(
                f"SELECT value FROM {self.collection} WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(
                "Durable store read failed",
                context={"operation": "get", "key": key, "error": str(e)},
            ) from e

        if row is None:
            return None
        return row[0]

    async def put(self, key: str, value: str) -> None:
        """Insert or overwrite the blob under ``key``.

        Raises:
            StoreError: If the write is rejected.
        """
        db = await self._get_db()
        try:
            await db.execute(
                f"INSERT INTO {self.collection} (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StoreError(
                "Durable store write failed",
                context={"operation": "put", "key": key, "error": str(e)},
            ) from e

        logger.debug("Stored blob", key=key, size=len(value))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

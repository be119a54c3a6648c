"""SQLite-backed score cache with WAL mode."""

import aiosqlite
import asyncio
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, NamedTuple, Optional
import logging

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """The score cache database could not be opened, read or written."""


class ScoreKey(NamedTuple):
    """Cache key: a title is scored once per market."""

    market: str
    title: str


class ScoreCache:
    """
    Persistent (market, title) -> score mapping.

    ``load`` reads the whole table once; ``merge`` updates the in-memory view;
    ``persist`` writes entries through so a crash mid-run keeps finished
    batches. Without a connection the cache works in memory only.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._scores: Dict[ScoreKey, float] = {}

    @property
    def connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """
        Open the database and create the table.

        Raises:
            CacheError: the file or directory is unusable, or the database is corrupt
        """
        try:
            db_dir = Path(self.db_path).parent
            db_dir.mkdir(parents=True, exist_ok=True)

            self._connection = await aiosqlite.connect(self.db_path)

            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")

            await self._create_tables()
        except (aiosqlite.Error, OSError) as e:
            await self.close()
            raise CacheError(f"Could not open score cache {self.db_path}: {e}") from e

        logger.info(f"Score cache connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Score cache closed")

    async def __aenter__(self) -> "ScoreCache":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _create_tables(self) -> None:
        async with self._lock:
            await self._connection.execute("""
                CREATE TABLE IF NOT EXISTS score_cache (
                    market_code TEXT NOT NULL,
                    title TEXT NOT NULL,
                    score REAL NOT NULL,
                    scored_at TEXT NOT NULL,
                    PRIMARY KEY (market_code, title)
                )
            """)
            await self._connection.commit()

    async def load(self) -> Dict[ScoreKey, float]:
        """
        Read every cached score into memory.

        Raises:
            CacheError: the table could not be read
        """
        if not self.connected:
            return dict(self._scores)

        try:
            async with self._lock:
                cursor = await self._connection.execute(
                    "SELECT market_code, title, score FROM score_cache"
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise CacheError(f"Could not read score cache: {e}") from e

        self._scores = {ScoreKey(market, title): score for market, title, score in rows}
        logger.info(f"Loaded {len(self._scores)} cached scores")
        return dict(self._scores)

    def get(self, key: ScoreKey) -> Optional[float]:
        return self._scores.get(key)

    def merge(self, scores: Mapping[ScoreKey, float]) -> None:
        """Update the in-memory view without touching disk."""
        self._scores.update(scores)

    async def persist(self, scores: Mapping[ScoreKey, float]) -> None:
        """
        Merge and write scores to disk immediately.

        Raises:
            CacheError: the write failed (the in-memory view is still updated)
        """
        if not scores:
            return
        self.merge(scores)
        if not self.connected:
            return

        now = datetime.now().isoformat()
        try:
            async with self._lock:
                await self._connection.executemany(
                    """
                    INSERT OR REPLACE INTO score_cache (market_code, title, score, scored_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    [(key.market, key.title, score, now) for key, score in scores.items()],
                )
                await self._connection.commit()
        except aiosqlite.Error as e:
            raise CacheError(f"Could not write score cache: {e}") from e
        logger.debug(f"Persisted {len(scores)} scores")

    def __len__(self) -> int:
        return len(self._scores)

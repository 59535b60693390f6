"""
Durable, capacity-bounded key/value store for encoded images.

Entries live in the ``cached_images`` table. Eviction order is kept in an
explicit deque of keys, ordered by first insertion and rebuilt from the
``insert_seq`` column when the store is opened, so FIFO eviction keeps
working across process restarts.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from pixelcache.config.database import DatabaseManager
from pixelcache.db.models import CachedImage
from pixelcache.exceptions import StoreInitializationError, StoreWriteError

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 100


class PersistentStore:
    """FIFO-evicting image store backed by an async SQLAlchemy engine.

    Overwriting an existing key replaces its payload but keeps its place in
    the eviction order: insertion order is defined by the first write.

    Parameters
    ----------
    database : DatabaseManager
        Owner of the engine and session factory.
    max_size : int
        Maximum number of distinct keys held at once.
    """

    def __init__(self, database: DatabaseManager, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._database = database
        self._max_size = max_size
        self._order: deque[str] = deque()
        self._next_seq = 1
        self._lock = asyncio.Lock()
        self._opened = False

    @property
    def max_size(self) -> int:
        """Capacity bound."""
        return self._max_size

    @property
    def is_open(self) -> bool:
        """Whether ``open()`` completed successfully."""
        return self._opened

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the table if needed and load the eviction order.

        Raises
        ------
        StoreInitializationError
            If the database cannot be reached or the schema created.
        """
        if self._opened:
            return
        try:
            await self._database.create_tables()
            factory = self._database.get_session_factory()
            async with factory() as session:
                result = await session.execute(
                    select(CachedImage.url, CachedImage.insert_seq).order_by(
                        CachedImage.insert_seq
                    )
                )
                rows = result.all()
        except (SQLAlchemyError, OSError) as exc:
            logger.error(
                "Failed to open image store at %s",
                self._database.database_url,
                exc_info=True,
            )
            raise StoreInitializationError(
                f"Image store failed to initialize: {exc}",
                database_url=self._database.database_url,
                original_error=exc,
            ) from exc

        self._order = deque(row[0] for row in rows)
        self._next_seq = (rows[-1][1] + 1) if rows else 1
        self._opened = True
        logger.debug(
            "Image store opened with %d entries (capacity %d)",
            len(self._order),
            self._max_size,
        )

    async def close(self) -> None:
        """Dispose of the engine. The store can be reopened later."""
        await self._database.close()
        self._opened = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Return the payload stored under *key*, or ``None``."""
        factory = self._database.get_session_factory()
        async with factory() as session:
            entry = await session.get(CachedImage, key)
            return entry.payload if entry is not None else None

    def keys(self) -> list[str]:
        """Stored keys, oldest (next to be evicted) first."""
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, key: object) -> bool:
        return key in self._order

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, key: str, value: str) -> None:
        """Insert or overwrite *key*.

        A new key arriving while the store is full evicts the
        oldest-inserted key first, in the same transaction.

        Raises
        ------
        StoreWriteError
            If the write transaction fails. In-memory order is unchanged.
        """
        async with self._lock:
            is_new = key not in self._order
            evicted: list[str] = []
            if is_new:
                overflow = len(self._order) - self._max_size + 1
                evicted = [self._order[i] for i in range(max(overflow, 0))]

            factory = self._database.get_session_factory()
            try:
                async with factory() as session:
                    async with session.begin():
                        if evicted:
                            await session.execute(
                                delete(CachedImage).where(CachedImage.url.in_(evicted))
                            )
                        if is_new:
                            session.add(
                                CachedImage(
                                    url=key, payload=value, insert_seq=self._next_seq
                                )
                            )
                        else:
                            # insert_seq keeps its first-write value
                            await session.execute(
                                update(CachedImage)
                                .where(CachedImage.url == key)
                                .values(payload=value)
                            )
            except SQLAlchemyError as exc:
                raise StoreWriteError(
                    f"Failed to store image for {key}: {exc}",
                    key=key,
                    original_error=exc,
                ) from exc

            for old_key in evicted:
                self._order.popleft()
                logger.debug("Evicted oldest cached image: %s", old_key)
            if is_new:
                self._order.append(key)
                self._next_seq += 1

    async def delete(self, key: str) -> None:
        """Remove *key*. No-op if absent."""
        async with self._lock:
            factory = self._database.get_session_factory()
            try:
                async with factory() as session:
                    async with session.begin():
                        await session.execute(
                            delete(CachedImage).where(CachedImage.url == key)
                        )
            except SQLAlchemyError as exc:
                raise StoreWriteError(
                    f"Failed to delete cached image {key}: {exc}",
                    key=key,
                    original_error=exc,
                ) from exc
            if key in self._order:
                self._order.remove(key)

    async def clear(self) -> None:
        """Remove every entry and reset the eviction order."""
        async with self._lock:
            factory = self._database.get_session_factory()
            try:
                async with factory() as session:
                    async with session.begin():
                        await session.execute(delete(CachedImage))
            except SQLAlchemyError as exc:
                raise StoreWriteError(
                    f"Failed to clear image store: {exc}", original_error=exc
                ) from exc
            removed = len(self._order)
            self._order.clear()
            self._next_seq = 1
            logger.info("Image store cleared (%d entries removed)", removed)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def stats(self) -> tuple[int, int, datetime | None, datetime | None]:
        """Return ``(count, total_payload_chars, oldest, newest)``."""
        factory = self._database.get_session_factory()
        async with factory() as session:
            result = await session.execute(
                select(
                    func.count(),
                    func.coalesce(func.sum(func.length(CachedImage.payload)), 0),
                    func.min(CachedImage.created_at),
                    func.max(CachedImage.created_at),
                ).select_from(CachedImage)
            )
            count, total_chars, oldest, newest = result.one()
        return int(count), int(total_chars), oldest, newest

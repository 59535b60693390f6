"""
Image cache service: the public entry point of pixelcache.

Composes the failure tracker, the persistent store, the scheduled queue and
the fetcher into cache-first image reads, queued loads on a miss, batch
preloading and cache / failure resets.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from types import TracebackType

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from pixelcache.config.database import DatabaseManager
from pixelcache.config.settings import DEFAULT_FALLBACK_RESOURCE, Settings
from pixelcache.exceptions import StoreInitializationError
from pixelcache.models.enums import OutcomeStatus, Priority
from pixelcache.models.results import CacheStats, SettledOutcome
from pixelcache.services.failure_tracker import FailureTracker
from pixelcache.services.fetcher import Fetcher, RetryPolicy, SleepFn
from pixelcache.services.persistent_store import PersistentStore
from pixelcache.services.scheduled_queue import ScheduledQueue
from pixelcache.services.transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)


# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Configuration                                                      ║
# ╚══════════════════════════════════════════════════════════════════════╝


class ImageCacheConfig(BaseModel):
    """Configuration for the image cache service.

    Attributes
    ----------
    database_url : str
        SQLAlchemy async URL of the persistent store.
    max_retries : int
        Network attempts per load.
    retry_base_delay_ms : int
        First backoff delay in milliseconds; doubles per attempt.
    max_concurrent : int
        Maximum simultaneous loads.
    cache_capacity : int
        Maximum number of cached images.
    fallback_resource : str
        Placeholder reference returned when an image is unavailable.
    request_timeout : float
        HTTP timeout in seconds for each attempt.
    """

    database_url: str
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    max_concurrent: int = Field(default=5, ge=1)
    cache_capacity: int = Field(default=100, ge=1)
    fallback_resource: str = DEFAULT_FALLBACK_RESOURCE
    request_timeout: float = Field(default=10.0, gt=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> ImageCacheConfig:
        """Build a config from application settings."""
        return cls(
            database_url=settings.effective_database_url,
            max_retries=settings.max_retries,
            retry_base_delay_ms=settings.retry_base_delay_ms,
            max_concurrent=settings.max_concurrent,
            cache_capacity=settings.cache_capacity,
            fallback_resource=settings.fallback_resource,
            request_timeout=settings.request_timeout,
        )


# ╔══════════════════════════════════════════════════════════════════════╗
# ║  ImageCacheService                                                  ║
# ╚══════════════════════════════════════════════════════════════════════╝


class ImageCacheService:
    """Prioritised, retrying, durable image loader.

    Each instance owns its own store, failure set and worker pool, so
    several isolated instances can run side by side. Use it as an async
    context manager or call ``open()`` / ``close()`` explicitly; operations
    called before ``open()`` open the store on first use.

    Parameters
    ----------
    config : ImageCacheConfig
        Loader configuration.
    transport : Transport | None
        Network capability. Defaults to an ``HttpxTransport`` that the
        service closes on ``close()``.
    sleep : SleepFn
        Coroutine used for backoff waits.
    """

    def __init__(
        self,
        config: ImageCacheConfig,
        *,
        transport: Transport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._config = config
        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpxTransport(
            timeout=config.request_timeout
        )
        self._database = DatabaseManager(config.database_url, echo=False)
        self._store = PersistentStore(self._database, max_size=config.cache_capacity)
        self._failures = FailureTracker()
        self._fetcher = Fetcher(
            transport=self._transport,
            store=self._store,
            failures=self._failures,
            fallback=config.fallback_resource,
            policy=RetryPolicy(
                max_retries=config.max_retries,
                base_delay_ms=config.retry_base_delay_ms,
            ),
            sleep=sleep,
        )
        self._queue = ScheduledQueue(self._fetcher.load, config.max_concurrent)
        self._open_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> ImageCacheConfig:
        return self._config

    @property
    def fallback(self) -> str:
        """Placeholder reference returned for unavailable images."""
        return self._config.fallback_resource

    @property
    def store(self) -> PersistentStore:
        return self._store

    @property
    def failures(self) -> FailureTracker:
        return self._failures

    @property
    def queue(self) -> ScheduledQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the persistent store and start the worker pool.

        Raises
        ------
        StoreInitializationError
            If the store cannot be opened. Later calls raise it again.
        """
        await self._ensure_open()

    async def _ensure_open(self) -> None:
        if self._open_task is None:
            self._open_task = asyncio.ensure_future(self._store.open())
        try:
            await asyncio.shield(self._open_task)
        except StoreInitializationError:
            raise
        except Exception as exc:
            raise StoreInitializationError(
                f"Image store failed to initialize: {exc}",
                database_url=self._config.database_url,
                original_error=exc,
            ) from exc
        self._queue.start()

    async def close(self) -> None:
        """Stop the worker pool and release network and database resources.

        The service can be opened again afterwards; the next ``open()`` or
        operation reopens the store and starts a fresh worker pool.
        """
        await self._queue.close()
        self._queue = ScheduledQueue(self._fetcher.load, self._config.max_concurrent)
        self._open_task = None
        if self._owns_transport:
            await self._transport.aclose()
        await self._store.close()
        logger.debug("Image cache service closed")

    async def __aenter__(self) -> ImageCacheService:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_image(self, url: str, *, priority: Priority = Priority.NORMAL) -> str:
        """Return the payload for *url*, loading it on a cache miss.

        Flow:
        1. URL already failed -> fallback, no network.
        2. Cached -> stored payload, no network.
        3. Otherwise queue a load at *priority* and wait for it.

        Raises
        ------
        StoreInitializationError
            If the persistent store could not be opened.
        """
        await self._ensure_open()

        # 1. Failure memoized
        if self._failures.is_failed(url):
            logger.debug("Failed URL, serving fallback: %s", url)
            return self.fallback

        # 2. Cache HIT
        try:
            cached = await self._store.get(url)
        except SQLAlchemyError:
            logger.error("Failed to read cached image %s", url, exc_info=True)
            return self.fallback
        if cached is not None:
            logger.debug("Cache HIT for image: %s", url)
            return cached

        # 3. Cache MISS -> queue
        logger.debug("Cache MISS for image: %s", url)
        return await self._queue.enqueue(url, priority)

    async def cache_image(self, url: str, *, priority: Priority = Priority.LOW) -> str:
        """Fetch and store *url* without consulting the cache first."""
        await self._ensure_open()
        return await self._queue.enqueue(url, priority)

    async def preload_images(self, urls: Iterable[str]) -> list[SettledOutcome]:
        """Load every URL at low priority and report each outcome.

        The batch itself never fails: a URL whose load raises is reported
        as ``rejected`` alongside the others.
        """
        url_list = list(urls)
        results = await asyncio.gather(
            *(self.cache_image(url, priority=Priority.LOW) for url in url_list),
            return_exceptions=True,
        )

        outcomes: list[SettledOutcome] = []
        for url, result in zip(url_list, results):
            if isinstance(result, BaseException):
                outcomes.append(
                    SettledOutcome(
                        url=url,
                        status=OutcomeStatus.REJECTED,
                        reason=str(result) or type(result).__name__,
                    )
                )
            else:
                outcomes.append(
                    SettledOutcome(url=url, status=OutcomeStatus.FULFILLED, value=result)
                )

        rejected = sum(1 for o in outcomes if not o.ok)
        logger.info(
            "Preloaded %d image(s): %d settled, %d rejected",
            len(outcomes),
            len(outcomes) - rejected,
            rejected,
        )
        return outcomes

    async def clear_cache(self) -> None:
        """Remove every cached image."""
        await self._ensure_open()
        await self._store.clear()

    def clear_failed_urls(self) -> None:
        """Give every failure-memoized URL another chance."""
        self._failures.reset()

    async def get_stats(self) -> CacheStats:
        """Compute statistics about the cache and the loader."""
        await self._ensure_open()
        count, total_chars, oldest, newest = await self._store.stats()
        stats = CacheStats(
            entry_count=count,
            capacity=self._store.max_size,
            total_payload_chars=total_chars,
            failed_url_count=len(self._failures),
            active_loads=self._queue.active_count,
            pending_loads=self._queue.pending_count,
            oldest_entry=oldest,
            newest_entry=newest,
        )
        logger.info(
            "Cache stats: entries=%d/%d, failed=%d, active=%d, pending=%d",
            stats.entry_count,
            stats.capacity,
            stats.failed_url_count,
            stats.active_loads,
            stats.pending_loads,
        )
        return stats

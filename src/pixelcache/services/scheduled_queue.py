"""
Priority-ordered, concurrency-bounded dispatcher for image loads.

A fixed pool of worker tasks pulls pending requests from an
``asyncio.PriorityQueue`` keyed by ``(priority rank, enqueue sequence)``.
That key gives the same order as a stable sort by tier, so requests in the
same tier run in enqueue order. Callers never block: ``enqueue`` returns a
future straight away and the pool drains the backlog on its own.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from pixelcache.models.enums import Priority

logger = logging.getLogger(__name__)

LoadFn = Callable[[str], Awaitable[str]]

DEFAULT_MAX_CONCURRENT = 5


@dataclass(order=True)
class PendingRequest:
    """A load waiting for a free worker."""

    rank: int
    sequence: int
    url: str = field(compare=False)
    priority: Priority = field(compare=False)
    future: asyncio.Future[str] = field(compare=False, repr=False)


class ScheduledQueue:
    """Bounded worker pool admitting loads in priority order.

    Parameters
    ----------
    load : LoadFn
        Coroutine function performing one load (normally ``Fetcher.load``).
    max_concurrent : int
        Number of workers, and so the ceiling on simultaneous loads.
    """

    def __init__(self, load: LoadFn, max_concurrent: int = DEFAULT_MAX_CONCURRENT) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._load = load
        self._max_concurrent = max_concurrent
        self._queue: asyncio.PriorityQueue[PendingRequest] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._sequence = itertools.count()
        self._active = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        """Loads currently running."""
        return self._active

    @property
    def pending_count(self) -> int:
        """Requests waiting for a worker."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def is_running(self) -> bool:
        return bool(self._workers) and not self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the worker pool on the running event loop. Idempotent."""
        if self._closed:
            raise RuntimeError("ScheduledQueue is closed")
        if self._workers:
            return
        if self._queue is None:
            self._queue = asyncio.PriorityQueue()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"pixelcache-worker-{i}")
            for i in range(self._max_concurrent)
        ]
        logger.debug("Started %d image load workers", self._max_concurrent)

    async def join(self) -> None:
        """Wait until every queued request has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Stop the workers and cancel requests that were never dispatched.

        Loads already running are cancelled with their worker.
        """
        if self._closed:
            return
        self._closed = True
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        dropped = 0
        if self._queue is not None:
            while not self._queue.empty():
                request = self._queue.get_nowait()
                if not request.future.done():
                    request.future.cancel()
                self._queue.task_done()
                dropped += 1
        if dropped:
            logger.info("Cancelled %d undispatched image load(s) on close", dropped)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def enqueue(self, url: str, priority: Priority = Priority.NORMAL) -> asyncio.Future[str]:
        """Queue *url* for loading and return a future for its result.

        Duplicate URLs are not coalesced: each call produces its own load.
        """
        if self._closed:
            raise RuntimeError("ScheduledQueue is closed")
        priority = Priority(priority)
        self.start()
        assert self._queue is not None

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        request = PendingRequest(
            rank=priority.rank,
            sequence=next(self._sequence),
            url=url,
            priority=priority,
            future=future,
        )
        self._queue.put_nowait(request)
        logger.debug(
            "Queued %s at %s priority (%d pending, %d active)",
            url,
            priority.value,
            self._queue.qsize(),
            self._active,
        )
        return future

    async def submit(self, url: str, priority: Priority = Priority.NORMAL) -> str:
        """Queue *url* and wait for its result."""
        return await self.enqueue(url, priority)

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            request = await queue.get()
            if request.future.done():
                # Caller stopped waiting before dispatch
                queue.task_done()
                continue

            self._active += 1
            logger.debug(
                "Worker %d dispatching %s (%s, %d active)",
                index,
                request.url,
                request.priority.value,
                self._active,
            )
            try:
                result = await self._load(request.url)
            except asyncio.CancelledError:
                if not request.future.done():
                    request.future.cancel()
                raise
            except Exception as exc:
                logger.error(
                    "Image load for %s raised", request.url, exc_info=True
                )
                if not request.future.done():
                    request.future.set_exception(exc)
            else:
                if not request.future.done():
                    request.future.set_result(result)
            finally:
                self._active -= 1
                queue.task_done()

"""
Services module for pixelcache.

Contains the loader's building blocks (persistent store, failure tracker,
transport, fetcher, scheduled queue) and the ``ImageCacheService`` that
composes them.
"""

from __future__ import annotations

from pixelcache.services.failure_tracker import FailureTracker
from pixelcache.services.fetcher import Fetcher, RetryPolicy
from pixelcache.services.image_cache import ImageCacheConfig, ImageCacheService
from pixelcache.services.persistent_store import PersistentStore
from pixelcache.services.scheduled_queue import ScheduledQueue
from pixelcache.services.transport import HttpxTransport, Transport, TransportResponse

__all__: list[str] = [
    "FailureTracker",
    "Fetcher",
    "HttpxTransport",
    "ImageCacheConfig",
    "ImageCacheService",
    "PersistentStore",
    "RetryPolicy",
    "ScheduledQueue",
    "Transport",
    "TransportResponse",
]

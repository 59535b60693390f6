"""
Failure memoization for image URLs that exhausted their retries.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class FailureTracker:
    """Set of URLs known to be unfetchable until explicitly reset.

    Entries never expire and cannot be removed one at a time; ``reset()``
    is the only way to give a URL another chance.
    """

    def __init__(self) -> None:
        self._failed: set[str] = set()

    def is_failed(self, url: str) -> bool:
        """Return ``True`` if *url* has been marked as failed."""
        return url in self._failed

    def mark_failed(self, url: str) -> None:
        """Record *url* as failed. Marking twice is harmless."""
        if url not in self._failed:
            self._failed.add(url)
            logger.info("Marked image URL as failed: %s", url)

    def reset(self) -> None:
        """Forget every failed URL."""
        count = len(self._failed)
        self._failed = set()
        logger.info("Cleared %d failed image URL(s)", count)

    def __len__(self) -> int:
        return len(self._failed)

    def __contains__(self, url: object) -> bool:
        return url in self._failed

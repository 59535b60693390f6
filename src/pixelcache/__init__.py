"""
pixelcache - Prioritised, retrying, durable image loader.

Fetches remote images through a concurrency-bounded priority queue,
persists them in a capacity-bounded FIFO store and remembers URLs that
keep failing so they are not requested again.
"""

from __future__ import annotations

__version__ = "0.3.0"
__author__ = "pixelcache"
__email__ = "noreply@pixelcache.dev"
__license__ = "AGPL-3.0-or-later"

__all__ = ["__version__", "__author__", "__email__", "__license__"]

"""
Database layer for pixelcache.
"""

from __future__ import annotations

from pixelcache.db.models import Base, CachedImage

__all__ = ["Base", "CachedImage"]

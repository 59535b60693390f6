"""
Data models module for pixelcache.
"""

from __future__ import annotations

from .enums import OutcomeStatus, Priority
from .results import CacheStats, SettledOutcome

__all__ = ["CacheStats", "OutcomeStatus", "Priority", "SettledOutcome"]

"""
Enums for pixelcache models.

Defines enumeration types used across the application for consistent
type safety and validation.
"""

from __future__ import annotations

from enum import Enum


class Priority(str, Enum):
    """Admission tier for a queued image load."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: lower ranks are dispatched first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.NORMAL: 1, Priority.LOW: 2}


class OutcomeStatus(str, Enum):
    """Settlement state of one item in a batch operation."""

    FULFILLED = "fulfilled"
    REJECTED = "rejected"

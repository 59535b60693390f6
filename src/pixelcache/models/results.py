"""
Result models returned by the image cache service.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from pixelcache.models.enums import OutcomeStatus


class SettledOutcome(BaseModel):
    """Per-URL result of a batch preload.

    Attributes
    ----------
    url : str
        The requested URL.
    status : OutcomeStatus
        ``fulfilled`` when the load produced a value, ``rejected`` when it
        raised.
    value : str | None
        Encoded payload or fallback reference for fulfilled loads.
    reason : str | None
        Error description for rejected loads.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    status: OutcomeStatus
    value: str | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the load settled with a value."""
        return self.status is OutcomeStatus.FULFILLED


class CacheStats(BaseModel):
    """Statistics about the image cache contents.

    Attributes
    ----------
    entry_count : int
        Number of cached images.
    capacity : int
        Maximum number of cached images.
    total_payload_chars : int
        Sum of encoded payload lengths.
    failed_url_count : int
        Number of URLs currently failure-memoized.
    active_loads : int
        Fetcher invocations in flight.
    pending_loads : int
        Requests waiting for a worker.
    oldest_entry : datetime | None
        Creation time of the next entry to be evicted.
    newest_entry : datetime | None
        Creation time of the most recently inserted entry.
    """

    entry_count: int = Field(ge=0)
    capacity: int = Field(ge=1)
    total_payload_chars: int = Field(ge=0)
    failed_url_count: int = Field(default=0, ge=0)
    active_loads: int = Field(default=0, ge=0)
    pending_loads: int = Field(default=0, ge=0)
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None

"""
Pytest configuration and fixtures for pixelcache tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from pixelcache.config.settings import Settings
from pixelcache.services.image_cache import ImageCacheConfig


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """File-backed sqlite URL unique to each test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'pixelcache.db'}"


@pytest.fixture
def mock_settings(tmp_path: Path) -> Settings:
    """Settings pointing every path at a temporary directory."""
    return Settings(
        cache_dir=tmp_path / "cache",
        log_level="INFO",
        debug=False,
    )


@pytest.fixture
def image_cache_config(database_url: str) -> ImageCacheConfig:
    """Create test image cache configuration with the default schedule."""
    return ImageCacheConfig(
        database_url=database_url,
        max_retries=3,
        retry_base_delay_ms=1000,
        max_concurrent=5,
        cache_capacity=100,
        fallback_resource="/placeholder/200x150?text=Image+Not+Available",
        request_timeout=2.0,
    )


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    """Record backoff delays without sleeping."""
    return SleepRecorder()

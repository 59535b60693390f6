"""
CLI interface module for pixelcache.

Provides a Typer-based command-line interface for loading, preloading,
inspecting and purging the image cache.
"""

from __future__ import annotations

__all__: list[str] = []

"""
Database models for pixelcache.

A single table holds every cached image keyed by its source URL.
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class CachedImage(Base):
    """Encoded image payload cached under its source URL."""

    __tablename__ = "cached_images"

    # Primary key
    url: Mapped[str] = mapped_column(String(2048), primary_key=True)

    # data:<mime>;base64,<body>
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    # First-write order; drives FIFO eviction and is never rewritten
    insert_seq: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # Timestamps
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<CachedImage(url={self.url!r}, insert_seq={self.insert_seq})>"

"""Shared column helpers for SQLAlchemy models."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin that adds a created_at column."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="When the record was created",
    )

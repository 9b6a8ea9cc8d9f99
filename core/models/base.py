"""Base model and mixins for all SQLAlchemy models.

Provides:
- Base: Declarative base class for all models
- RecordMixin: Adds an opaque string primary key and UTC timestamps
- as_utc: Normalises datetimes read back from stores that drop the offset

Ids are plain strings so the same schema runs on PostgreSQL and SQLite and
callers can treat them as opaque keys.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite returns them without tzinfo)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all storefront models."""
    pass


class RecordMixin:
    """Mixin providing an opaque id and standard audit columns.

    Adds:
    - id: UUID4 rendered as a 36-char string (auto-generated)
    - created_at: Timestamp set on insert
    - updated_at: Timestamp updated on every change
    """

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

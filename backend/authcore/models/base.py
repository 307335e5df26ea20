"""Reusable SQLAlchemy column types and mixins (typed 2.0)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, TypeDecorator, func
from sqlalchemy.orm import Mapped, mapped_column

from authcore.services._shared.clock import ensure_utc


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware ``DateTime`` that always round-trips as UTC.

    Values are converted to UTC before binding; naive values coming back
    (SQLite) are labelled UTC, so comparisons against ``utcnow()`` are safe on
    every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        return ensure_utc(value)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        return ensure_utc(value)


class PKMixin:
    """Integer surrogate primary key named ``id``."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class TimestampMixin:
    """``created_at`` / ``updated_at`` columns maintained by the database."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class ReprMixin:
    """Provide a concise ``__repr__`` including the class name and natural key."""

    __repr_key__ = "id"

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        key = getattr(self, self.__repr_key__, None)
        return f"<{cls} {self.__repr_key__}={key}>"

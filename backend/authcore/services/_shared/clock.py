"""Time helpers shared by the service layer and the store adapters."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime

from authcore.services._shared.errors import StoreTimeoutError


def utcnow() -> datetime:
    """Return a timezone-aware UTC "now"."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Normalize a datetime to aware UTC.

    SQLite round-trips ``DateTime(timezone=True)`` columns as naive values;
    those are labelled as UTC (no conversion).
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def from_timestamp(ts: int | float) -> datetime:
    """Convert a POSIX timestamp (JWT ``iat``/``exp``) to aware UTC."""
    return datetime.fromtimestamp(int(ts), tz=UTC)


@dataclass(frozen=True, slots=True)
class Deadline:
    """
    Caller-supplied time budget for a service call.

    The service checks the deadline between store round-trips; once it has
    passed the call fails closed with :class:`StoreTimeoutError`.

    :ivar expires_at: ``time.monotonic()`` value after which the budget is spent.
    """

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        """Build a deadline ``seconds`` from now."""
        return cls(expires_at=time.monotonic() + float(seconds))

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str) -> None:
        """
        Raise when the budget is spent.

        :param operation: Name of the step, used in the error message.
        :raises StoreTimeoutError: If the deadline has passed.
        """
        if self.expired():
            raise StoreTimeoutError(f"Deadline exceeded during {operation}")

from __future__ import annotations

import logging
import threading
import time
from typing import Protocol

from authcore.services._shared.clock import utcnow
from authcore.services._shared.errors import StoreUnavailableError
from authcore.services.auth.dto import RevocationEntry, RevocationStats

logger = logging.getLogger(__name__)

DEFAULT_NEGATIVE_TTL_SECONDS = 5
DEFAULT_POSITIVE_TTL_SECONDS = 300


class RevocationList(Protocol):
    """
    Denylist of token ``jti`` values.

    Entries are write-once: adding an already revoked ``jti`` is a no-op.
    """

    def add(self, entry: RevocationEntry) -> bool:
        """:returns: True if a new entry was written."""

    def is_revoked(self, jti: str) -> bool: ...

    def purge_expired(self) -> int:
        """Remove entries whose ``expires_at`` has passed. :returns: Rows removed."""

    def stats(self, user_id: int | None = None) -> RevocationStats:
        """Count stored entries by token type and reason, optionally for one user."""


class RevocationCache(Protocol):
    """
    Fast lookaside cache in front of the authoritative revocation list.

    ``get`` returns ``True``/``False`` for cached positive/negative answers and
    ``None`` on a miss. Backend failures surface as :class:`StoreUnavailableError`.
    """

    def get(self, jti: str) -> bool | None: ...

    def set(self, jti: str, revoked: bool, ttl_seconds: int) -> None: ...


class InMemoryRevocationList(RevocationList):
    """Simple in-memory revocation list for access tokens by JTI."""

    def __init__(self) -> None:
        self._entries: dict[str, RevocationEntry] = {}
        self._lock = threading.Lock()

    def add(self, entry: RevocationEntry) -> bool:
        with self._lock:
            if entry.jti in self._entries:
                return False
            self._entries[entry.jti] = entry
            return True

    def is_revoked(self, jti: str) -> bool:
        return jti in self._entries

    def purge_expired(self) -> int:
        now = utcnow()
        with self._lock:
            doomed = [jti for jti, e in self._entries.items() if e.is_expired(now)]
            for jti in doomed:
                del self._entries[jti]
            return len(doomed)

    def get(self, jti: str) -> RevocationEntry | None:
        return self._entries.get(jti)

    def stats(self, user_id: int | None = None) -> RevocationStats:
        with self._lock:
            rows = [
                (e.token_type.value, e.reason, 1)
                for e in self._entries.values()
                if user_id is None or e.user_id == user_id
            ]
        return RevocationStats.from_rows(rows)


class InMemoryRevocationCache(RevocationCache):
    """Per-process TTL cache used when no Redis is configured."""

    def __init__(self, max_entries: int = 10_000) -> None:
        self._data: dict[str, tuple[bool, float]] = {}
        self._max_entries = max_entries
        self._lock = threading.Lock()

    def get(self, jti: str) -> bool | None:
        with self._lock:
            hit = self._data.get(jti)
            if hit is None:
                return None
            value, expires = hit
            if time.monotonic() >= expires:
                del self._data[jti]
                return None
            return value

    def set(self, jti: str, revoked: bool, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        with self._lock:
            current = self._data.get(jti)
            if not revoked and current is not None and current[0] and current[1] > time.monotonic():
                return
            if len(self._data) >= self._max_entries:
                now = time.monotonic()
                self._data = {k: v for k, v in self._data.items() if v[1] > now}
                if len(self._data) >= self._max_entries:
                    self._data.clear()
            self._data[jti] = (revoked, time.monotonic() + ttl_seconds)


class CachedRevocationList(RevocationList):
    """
    Revocation list fronted by a cache.

    * Writes go to the authority first, then prime the cache until the token
      expires.
    * Positive reads are cached for ``positive_ttl`` seconds, negative reads for
      ``negative_ttl`` seconds. The negative TTL bounds how long another
      process may keep accepting a freshly revoked token.
    * Cache failures are logged and the authority is consulted instead.
      Authority failures propagate (callers fail closed).

    :param authority: Durable revocation list (e.g. the SQL adapter).
    :param cache: Redis or in-process cache.
    """

    def __init__(
        self,
        authority: RevocationList,
        cache: RevocationCache,
        *,
        negative_ttl: int = DEFAULT_NEGATIVE_TTL_SECONDS,
        positive_ttl: int = DEFAULT_POSITIVE_TTL_SECONDS,
    ) -> None:
        self.authority = authority
        self.cache = cache
        self.negative_ttl = negative_ttl
        self.positive_ttl = positive_ttl

    def _cache_set(self, jti: str, revoked: bool, ttl: int) -> None:
        try:
            self.cache.set(jti, revoked, ttl)
        except StoreUnavailableError as exc:
            logger.warning("revocation cache write failed", extra={"jti": jti, "reason": str(exc)})

    def add(self, entry: RevocationEntry) -> bool:
        created = self.authority.add(entry)
        self._cache_set(entry.jti, True, max(1, entry.remaining_seconds()))
        return created

    def is_revoked(self, jti: str) -> bool:
        try:
            cached = self.cache.get(jti)
        except StoreUnavailableError as exc:
            logger.warning("revocation cache read failed", extra={"jti": jti, "reason": str(exc)})
            cached = None
        if cached is not None:
            return cached

        revoked = self.authority.is_revoked(jti)
        self._cache_set(jti, revoked, self.positive_ttl if revoked else self.negative_ttl)
        return revoked

    def purge_expired(self) -> int:
        return self.authority.purge_expired()

    def stats(self, user_id: int | None = None) -> RevocationStats:
        return self.authority.stats(user_id)

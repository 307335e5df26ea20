from __future__ import annotations

from typing import cast

import redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from authcore.services._shared.errors import StoreUnavailableError
from authcore.services._shared.ports import RevocationCache


class RedisRevocationCache(RevocationCache):
    """
    Shared revocation cache keyed by ``jti``.

    Stores ``"1"`` (revoked) or ``"0"`` (known not revoked) with a TTL so
    every worker process sees a revocation as soon as it is written.

    :param r: A Redis client (already connected).
    """

    def __init__(self, r: redis.Redis, *, prefix: str = "revoked:jti:") -> None:
        self.r = r
        self.prefix = prefix

    def _k(self, jti: str) -> str:
        return f"{self.prefix}{jti}"

    def get(self, jti: str) -> bool | None:
        try:
            raw = cast(bytes | str | None, self.r.get(self._k(jti)))
        except RedisError as exc:
            raise StoreUnavailableError("Revocation cache unavailable") from exc
        if raw is None:
            return None
        return raw in (b"1", "1")

    def set(self, jti: str, revoked: bool, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        key = self._k(jti)
        try:
            if revoked:
                # A positive marker always wins over a cached negative one.
                self.r.set(key, "1", ex=ttl_seconds)
            else:
                # Never overwrite a positive marker with a negative one.
                self.r.set(key, "0", ex=ttl_seconds, nx=True)
        except RedisError as exc:
            raise StoreUnavailableError("Revocation cache unavailable") from exc

"""
Unit tests for RedisRevocationCache using fakeredis.

They use fakeredis.FakeRedis so they run entirely in-memory.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from authcore.infra.redis.redis_revocation_cache import RedisRevocationCache
from authcore.services._shared.clock import utcnow
from authcore.services._shared.errors import StoreUnavailableError
from authcore.services._shared.ports import CachedRevocationList, InMemoryRevocationList
from authcore.services.auth.dto import RevocationEntry, TokenType
from redis.exceptions import ConnectionError as RedisConnectionError


@pytest.fixture
def cache(fake_redis):
    return RedisRevocationCache(fake_redis)


def test_miss_positive_negative(cache, fake_redis):
    assert cache.get("a") is None
    cache.set("a", True, 60)
    cache.set("b", False, 60)
    assert cache.get("a") is True
    assert cache.get("b") is False
    assert fake_redis.get("revoked:jti:a") == b"1"
    assert 0 < fake_redis.ttl("revoked:jti:a") <= 60


def test_negative_never_overwrites_positive(cache):
    cache.set("a", True, 60)
    cache.set("a", False, 60)
    assert cache.get("a") is True


def test_positive_overwrites_negative(cache):
    cache.set("a", False, 60)
    cache.set("a", True, 60)
    assert cache.get("a") is True


def test_zero_ttl_is_ignored(cache, fake_redis):
    cache.set("a", True, 0)
    assert fake_redis.exists("revoked:jti:a") == 0


def test_redis_errors_become_store_unavailable(monkeypatch, fake_redis):
    def down(*args, **kwargs):
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(fake_redis, "get", down)
    monkeypatch.setattr(fake_redis, "set", down)
    cache = RedisRevocationCache(fake_redis)

    with pytest.raises(StoreUnavailableError):
        cache.get("a")
    with pytest.raises(StoreUnavailableError):
        cache.set("a", True, 10)


def test_shared_cache_propagates_revocation_between_workers(fake_redis):
    """A revocation written by one worker is seen by another without the authority."""
    authority = InMemoryRevocationList()
    writer = CachedRevocationList(authority, RedisRevocationCache(fake_redis))
    reader = CachedRevocationList(InMemoryRevocationList(), RedisRevocationCache(fake_redis))

    writer.add(
        RevocationEntry(
            jti="shared",
            token_type=TokenType.ACCESS,
            expires_at=utcnow() + timedelta(minutes=5),
        )
    )
    assert reader.is_revoked("shared") is True
    assert 0 < fake_redis.ttl("revoked:jti:shared") <= 300

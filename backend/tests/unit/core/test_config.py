"""Store I/O timeouts derived from the request deadline."""

from __future__ import annotations

import fakeredis
import pytest
import redis
from authcore.core import extensions
from authcore.core.config import TestingConfig, store_engine_options
from authcore.factory import create_app


class TestStoreEngineOptions:
    @pytest.mark.parametrize("timeout", [None, 0, -1])
    def test_no_timeout_keeps_driver_defaults(self, timeout):
        assert store_engine_options("postgresql://db/auth", timeout) == {}

    def test_sqlite_gets_lock_timeout_only(self):
        assert store_engine_options("sqlite:///tokens.db", 2.5) == {
            "connect_args": {"timeout": 2.5}
        }

    def test_postgresql_bounds_checkout_connect_and_statement(self):
        options = store_engine_options("postgresql+psycopg://db/auth", 1.5)
        assert options["pool_timeout"] == 1.5
        assert options["pool_pre_ping"] is True
        assert options["connect_args"] == {
            "connect_timeout": 2,
            "options": "-c statement_timeout=1500",
        }

    def test_other_backends_bound_pool_checkout(self):
        options = store_engine_options("mysql://db/auth", 3)
        assert options == {"pool_pre_ping": True, "pool_timeout": 3}


def test_app_derives_timeouts_from_deadline(monkeypatch):
    seen = {}

    def from_url(url, **kwargs):
        seen.update(kwargs)
        return fakeredis.FakeRedis()

    monkeypatch.setattr(redis.Redis, "from_url", staticmethod(from_url))
    monkeypatch.setattr(extensions, "redis_client", None)

    class DeadlineConfig(TestingConfig):
        AUTH_REQUEST_DEADLINE_SECONDS = 0.75
        REDIS_URL = "redis://cache:6379/0"

    app = create_app(DeadlineConfig)

    assert seen == {"socket_timeout": 0.75, "socket_connect_timeout": 0.75}
    assert app.config["SQLALCHEMY_ENGINE_OPTIONS"]["connect_args"]["timeout"] == 0.75

"""Global Flask extension instances and initialization helpers."""

from __future__ import annotations

import redis  # type: ignore[import-untyped]
from flask import Flask
from flask_jwt_extended import JWTManager
from flask_sqlalchemy import SQLAlchemy
from redis.exceptions import RedisError  # type: ignore[import-untyped]
from sqlalchemy import MetaData

from authcore.core.config import store_engine_options

# Global naming convention for all constraints
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Global singletons (import-safe)
db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)
jwt = JWTManager()
redis_client: redis.Redis | None = None


def init_app(app: Flask) -> None:
    """Initialize SQLAlchemy, JWT and (optionally) Redis.

    Parameters
    ----------
    app: flask.Flask
        Application used to bind extension instances. This call imports the
        :mod:`authcore.models` package so the token tables are registered on
        the metadata before ``create_all``.

    Notes
    -----
    ``AUTH_REQUEST_DEADLINE_SECONDS`` also bounds every single store round
    trip: it becomes the Redis socket timeouts and, unless
    ``SQLALCHEMY_ENGINE_OPTIONS`` is set explicitly, the database
    checkout/statement timeouts.
    """
    io_timeout = float(app.config.get("AUTH_REQUEST_DEADLINE_SECONDS", 0) or 0) or None
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        store_engine_options(app.config["SQLALCHEMY_DATABASE_URI"], io_timeout),
    )
    db.init_app(app)

    from authcore import models as _models  # noqa: F401

    jwt.init_app(app)

    global redis_client
    redis_url = app.config.get("REDIS_URL")
    if not redis_url:
        redis_client = None
        app.extensions.pop("redis_client", None)
        return

    redis_client = redis.Redis.from_url(
        redis_url, socket_timeout=io_timeout, socket_connect_timeout=io_timeout
    )
    try:
        redis_client.ping()
    except RedisError as exc:
        raise RuntimeError(f"Failed to connect to Redis at {redis_url!r}") from exc
    app.extensions["redis_client"] = redis_client


def get_redis() -> redis.Redis | None:
    """Return the Redis client, or ``None`` when ``REDIS_URL`` is unset."""
    return redis_client

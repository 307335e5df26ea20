"""Health check endpoint."""

from __future__ import annotations

from flask import Blueprint, current_app
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from authcore.api.deps import json_response, timing
from authcore.core.extensions import db, get_redis

bp = Blueprint("health", __name__)


@bp.get("/health")
@timing
def healthcheck():
    """Return application, database and cache health information."""

    db_status = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:  # pragma: no cover - depends on DB backend
        current_app.logger.exception("healthcheck.db_error")
        db_status = "fail"

    client = get_redis()
    cache_status = "disabled"
    if client is not None:
        try:
            client.ping()
            cache_status = "ok"
        except RedisError:  # pragma: no cover - depends on Redis availability
            current_app.logger.exception("healthcheck.redis_error")
            cache_status = "fail"

    version = current_app.config.get("APP_VERSION", "dev")
    payload = {"status": "ok", "db": db_status, "cache": cache_status, "version": version}
    return json_response(payload, status=200 if db_status == "ok" else 503)

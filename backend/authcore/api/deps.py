"""Shared API helpers for request parsing and cross-cutting concerns."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Response, current_app, g, jsonify, request

from authcore.core.auth import get_auth_service
from authcore.core.errors import Unauthorized
from authcore.core.logger import ensure_request_id
from authcore.services._shared.base import ServiceContext
from authcore.services._shared.clock import Deadline
from authcore.services.auth.dto import DeviceInfo, JwtPayload
from authcore.services.auth.service import AuthenticationService

F = TypeVar("F", bound=Callable[..., Any])

DEVICE_ID_HEADER = "X-Device-ID"


def auth_service() -> AuthenticationService:
    """Return the authentication service bound to the current request."""

    ctx = ServiceContext(request_id=ensure_request_id(), remote_addr=request.remote_addr)
    return get_auth_service().with_context(ctx)


def request_deadline() -> Deadline | None:
    """Per-request time budget from ``AUTH_REQUEST_DEADLINE_SECONDS``."""

    seconds = float(current_app.config.get("AUTH_REQUEST_DEADLINE_SECONDS", 0) or 0)
    return Deadline.after(seconds) if seconds > 0 else None


def device_info_from_request(device_name: str | None = None) -> DeviceInfo:
    """Describe the calling device from ``User-Agent``/``X-Device-ID`` headers."""

    return DeviceInfo.from_user_agent(
        request.headers.get("User-Agent", ""),
        request.remote_addr,
        device_id=(request.headers.get(DEVICE_ID_HEADER) or "").strip() or None,
        device_name=device_name,
    )


def bearer_token() -> str | None:
    """Extract the raw token from an ``Authorization: Bearer`` header."""

    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def current_token() -> JwtPayload:
    """Payload of the access token verified by :func:`require_auth`."""

    return g.token_payload  # type: ignore[no-any-return]


def require_auth(func: F) -> F:
    """Ensure the request carries a valid, non-revoked access token."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        token = bearer_token()
        if token is None:
            raise Unauthorized("Missing bearer token")
        g.access_token = token
        g.token_payload = auth_service().validate_access_token(
            token, deadline=request_deadline()
        )
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            request_endpoint = getattr(request, "endpoint", None)
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request_endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]

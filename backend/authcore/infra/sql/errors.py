"""Translate database failures into the auth error taxonomy."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from authcore.services._shared.errors import StoreUnavailableError

log = logging.getLogger(__name__)


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """
    Re-raise any :class:`SQLAlchemyError` as :class:`StoreUnavailableError`.

    :param operation: Store operation name, logged with the failure.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        log.error("Token store failure", extra={"event": operation}, exc_info=True)
        raise StoreUnavailableError(f"Token store unavailable during {operation}") from exc

"""Revocation list repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from authcore.models.revoked_token import RevokedToken
from authcore.repositories.base import BaseRepository


class RevokedTokenRepository(BaseRepository[RevokedToken]):
    """Persistence-only repository for :class:`RevokedToken`."""

    model = RevokedToken

    def _filterable_fields(self):
        return {"jti": RevokedToken.jti, "user_id": RevokedToken.user_id}

    def delete_expired(self, now: datetime) -> int:
        return self.delete_where(RevokedToken.expires_at <= now)

    def counts_by_type_and_reason(self, *criteria: Any) -> list[tuple[str, str | None, int]]:
        """``(token_type, reason, count)`` rows over entries matching ``criteria``."""
        stmt = (
            select(RevokedToken.token_type, RevokedToken.reason, func.count(RevokedToken.jti))
            .where(*criteria)
            .group_by(RevokedToken.token_type, RevokedToken.reason)
        )
        return [(t, r, int(n)) for t, r, n in self.session.execute(stmt).all()]

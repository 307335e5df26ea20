"""Refresh token repository (persistence only; no rotation policy)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select

from authcore.models.refresh_token import RefreshToken
from authcore.repositories.base import BaseRepository
from authcore.services.auth.dto import TokenStatus

ACTIVE = TokenStatus.ACTIVE.value
REVOKED = TokenStatus.REVOKED.value


class RefreshTokenRepository(BaseRepository[RefreshToken]):
    """Persistence-only repository for :class:`RefreshToken`."""

    model = RefreshToken

    def _filterable_fields(self):
        return {
            "jti": RefreshToken.jti,
            "token_hash": RefreshToken.token_hash,
            "user_id": RefreshToken.user_id,
        }

    # ---------------------------- Lookups ----------------------------

    def get_by_jti(self, jti: str, *, fresh: bool = False) -> RefreshToken | None:
        """
        Fetch a row by ``jti``.

        :param fresh: Bypass the identity map (re-read after a bulk update).
        """
        stmt = select(RefreshToken).where(RefreshToken.jti == jti)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.session.execute(stmt).scalars().first()

    def active_for_user(
        self, user_id: int, now: datetime, *, include_expired: bool = False
    ) -> list[RefreshToken]:
        criteria = [RefreshToken.user_id == user_id, RefreshToken.status == ACTIVE]
        if not include_expired:
            criteria.append(RefreshToken.expires_at > now)
        return self.select_all(*criteria, order_by=RefreshToken.created_at)

    def active_for_device(self, user_id: int, device_id: str, now: datetime) -> list[RefreshToken]:
        return self.select_all(
            RefreshToken.user_id == user_id,
            RefreshToken.device_id == device_id,
            RefreshToken.status == ACTIVE,
            RefreshToken.expires_at > now,
            order_by=RefreshToken.created_at,
        )

    def family(self, root_jti: str) -> list[RefreshToken]:
        return self.select_all(RefreshToken.root_jti == root_jti, order_by=RefreshToken.id)

    # ---------------------------- Mutations ----------------------------

    def revoke_where(self, *criteria: Any, reason: str, now: datetime) -> int:
        """
        Flip matching *active* rows to ``revoked``.

        The ``status = 'active'`` predicate is always part of the statement,
        which makes a single-row call a compare-and-swap.
        """
        return self.update_where(
            RefreshToken.status == ACTIVE,
            *criteria,
            status=REVOKED,
            revoked_at=now,
            revoked_reason=reason,
        )

    def touch(self, jti: str, at: datetime) -> int:
        return self.update_where(RefreshToken.jti == jti, last_used_at=at)

    def delete_expired(self, before: datetime) -> int:
        return self.delete_where(RefreshToken.expires_at < before)

    def delete_revoked_before(self, cutoff: datetime) -> int:
        return self.delete_where(
            RefreshToken.status == REVOKED,
            RefreshToken.revoked_at.is_not(None),
            RefreshToken.revoked_at <= cutoff,
        )

    # ---------------------------- Stats ----------------------------

    def counts(self, now: datetime, *criteria: Any) -> dict[str, int]:
        """Aggregate counters over rows matching ``criteria``."""
        active = case(
            ((RefreshToken.status == ACTIVE) & (RefreshToken.expires_at > now), 1), else_=0
        )
        expired = case((RefreshToken.expires_at <= now, 1), else_=0)
        revoked = case((RefreshToken.status == REVOKED, 1), else_=0)
        stmt = select(
            func.count(RefreshToken.id),
            func.coalesce(func.sum(active), 0),
            func.coalesce(func.sum(expired), 0),
            func.coalesce(func.sum(revoked), 0),
            func.count(func.distinct(RefreshToken.user_id)),
            func.count(func.distinct(RefreshToken.device_id)),
        ).where(*criteria)
        row = self.session.execute(stmt).one()
        keys = ("total", "active", "expired", "revoked", "users", "devices")
        return {k: int(v or 0) for k, v in zip(keys, row, strict=True)}

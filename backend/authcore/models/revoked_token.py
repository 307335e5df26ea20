"""Authoritative revocation list rows (access-token denylist)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authcore.core.extensions import db
from authcore.services._shared.clock import utcnow
from authcore.services.auth.dto import RevocationEntry, TokenType

from .base import PKMixin, ReprMixin, UTCDateTime


class RevokedToken(PKMixin, ReprMixin, db.Model):
    """Write-once revocation marker; purged once ``expires_at`` passes."""

    __tablename__ = "revoked_tokens"
    __repr_key__ = "jti"

    jti: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    token_type: Mapped[str] = mapped_column(String(16), nullable=False)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    revoked_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    reason: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def to_entry(self) -> RevocationEntry:
        return RevocationEntry(
            jti=self.jti,
            token_type=TokenType(self.token_type),
            expires_at=self.expires_at,
            revoked_at=self.revoked_at,
            user_id=self.user_id,
            reason=self.reason,
        )

    @classmethod
    def from_entry(cls, entry: RevocationEntry) -> RevokedToken:
        return cls(
            jti=entry.jti,
            token_type=entry.token_type.value,
            user_id=entry.user_id,
            expires_at=entry.expires_at,
            revoked_at=entry.revoked_at,
            reason=entry.reason,
        )

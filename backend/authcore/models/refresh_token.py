"""Persisted refresh-token records (one row per issued refresh JWT)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from authcore.core.extensions import db
from authcore.services._shared.clock import utcnow
from authcore.services.auth.dto import DeviceInfo, RefreshTokenRecord, TokenStatus

from .base import PKMixin, ReprMixin, UTCDateTime


class RefreshToken(PKMixin, ReprMixin, db.Model):
    """
    Refresh token row.

    The raw token is never stored, only its SHA-256 ``token_hash``.
    ``root_jti`` is fixed at insert time so a whole rotation family can be
    selected (and revoked) with a single indexed predicate.

    ``user_id`` deliberately has no foreign key: users may live in another
    store behind the credential verifier.
    """

    __tablename__ = "refresh_tokens"
    __repr_key__ = "jti"

    jti: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    root_jti: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    parent_token_jti: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TokenStatus.ACTIVE.value
    )

    # Device binding
    device_id: Mapped[str] = mapped_column(String(128), nullable=False)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(64), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Lifecycle
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'revoked')", name="status_valid"),
        Index("ix_refresh_tokens_user_status", "user_id", "status"),
        Index("ix_refresh_tokens_user_device", "user_id", "device_id"),
    )

    # -------------------- Mapping --------------------

    def to_record(self) -> RefreshTokenRecord:
        """Detach the row into an immutable read-model."""
        return RefreshTokenRecord(
            jti=self.jti,
            user_id=self.user_id,
            token_hash=self.token_hash,
            device_info=DeviceInfo(
                device_id=self.device_id,
                device_name=self.device_name,
                device_type=self.device_type,
                user_agent=self.user_agent,
                ip_address=self.ip_address,
                platform=self.platform,
                browser=self.browser,
            ),
            created_at=self.created_at,
            expires_at=self.expires_at,
            root_jti=self.root_jti,
            parent_token_jti=self.parent_token_jti,
            status=TokenStatus(self.status),
            last_used_at=self.last_used_at,
            revoked_at=self.revoked_at,
            revoked_reason=self.revoked_reason,
        )

    @classmethod
    def from_record(cls, record: RefreshTokenRecord) -> RefreshToken:
        device = record.device_info
        return cls(
            jti=record.jti,
            user_id=record.user_id,
            token_hash=record.token_hash,
            root_jti=record.root_jti,
            parent_token_jti=record.parent_token_jti,
            status=record.status.value,
            device_id=device.device_id,
            device_name=device.device_name,
            device_type=device.device_type,
            user_agent=device.user_agent,
            ip_address=device.ip_address,
            platform=device.platform,
            browser=device.browser,
            created_at=record.created_at,
            expires_at=record.expires_at,
            last_used_at=record.last_used_at,
            revoked_at=record.revoked_at,
            revoked_reason=record.revoked_reason,
        )

# comments in English; reST docstrings
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from authcore.infra.sql.errors import store_errors
from authcore.models.refresh_token import RefreshToken
from authcore.services._shared.clock import utcnow
from authcore.services._shared.ports import RefreshTokenStore, RotationResult
from authcore.services.auth.dto import (
    DeviceInfo,
    RefreshTokenRecord,
    RevocationReason,
    SystemTokenStats,
    TokenStats,
)
from authcore.uow.sqlalchemy_uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork


class SQLRefreshTokenStore(RefreshTokenStore):
    """
    Relational refresh token store with atomic rotation.

    Every method runs in its own Unit of Work. ``revoke`` and ``rotate`` rely
    on a conditional ``UPDATE ... WHERE status = 'active'`` and the affected
    row count, so concurrent callers racing on the same ``jti`` see exactly
    one success.

    .. note::
       Requires an active Flask app context (Flask-SQLAlchemy session).
    """

    # -------------------- Creation & rotation --------------------

    def create(
        self,
        *,
        jti: str,
        user_id: int,
        token_hash: str,
        expires_at: datetime,
        device_info: DeviceInfo,
        parent_token_jti: str | None = None,
    ) -> bool:
        """
        Insert the refresh record *before* the JWT is handed to the client.

        :returns: ``False`` when ``jti`` or ``token_hash`` already exists.
        """
        with store_errors("refresh.create"):
            try:
                with SQLAlchemyUnitOfWork() as uow:
                    root_jti = jti
                    if parent_token_jti is not None:
                        parent = uow.refresh_tokens.get_by_jti(parent_token_jti)
                        root_jti = parent.root_jti if parent else parent_token_jti
                    record = RefreshTokenRecord(
                        jti=jti,
                        user_id=user_id,
                        token_hash=token_hash,
                        device_info=device_info,
                        created_at=utcnow(),
                        expires_at=expires_at,
                        root_jti=root_jti,
                        parent_token_jti=parent_token_jti,
                    )
                    uow.refresh_tokens.add(RefreshToken.from_record(record))
            except IntegrityError:
                return False
        return True

    def rotate(self, *, old_jti: str, child: RefreshTokenRecord, now: datetime) -> RotationResult:
        with store_errors("refresh.rotate"), SQLAlchemyUnitOfWork() as uow:
            repo = uow.refresh_tokens
            old = repo.get_by_jti(old_jti)
            if old is None:
                return RotationResult.NOT_FOUND

            swapped = repo.revoke_where(
                RefreshToken.jti == old_jti,
                RefreshToken.expires_at > now,
                reason=RevocationReason.ROTATED,
                now=now,
            )
            if swapped != 1:
                current = repo.get_by_jti(old_jti, fresh=True)
                if current is None:
                    return RotationResult.NOT_FOUND
                record = current.to_record()
                return RotationResult.REVOKED if record.is_revoked else RotationResult.EXPIRED

            linked = replace(child, root_jti=old.root_jti, parent_token_jti=old_jti)
            repo.add(RefreshToken.from_record(linked))
            return RotationResult.OK

    # -------------------- Lookups --------------------

    def find_by_jti(self, jti: str) -> RefreshTokenRecord | None:
        with store_errors("refresh.find_by_jti"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            row = uow.refresh_tokens.get_by_jti(jti, fresh=True)
            return row.to_record() if row else None

    def find_by_token_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        with store_errors("refresh.find_by_token_hash"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            row = uow.refresh_tokens.find_one(token_hash=token_hash)
            return row.to_record() if row else None

    def find_by_user_id(
        self, user_id: int, include_expired: bool = False
    ) -> list[RefreshTokenRecord]:
        with store_errors("refresh.find_by_user_id"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            rows = uow.refresh_tokens.active_for_user(
                user_id, utcnow(), include_expired=include_expired
            )
            return [r.to_record() for r in rows]

    def find_by_user_id_and_device(self, user_id: int, device_id: str) -> list[RefreshTokenRecord]:
        with store_errors("refresh.find_by_device"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            rows = uow.refresh_tokens.active_for_device(user_id, device_id, utcnow())
            return [r.to_record() for r in rows]

    def get_token_family(self, root_jti: str) -> list[RefreshTokenRecord]:
        with store_errors("refresh.family"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            return [r.to_record() for r in uow.refresh_tokens.family(root_jti)]

    # -------------------- Mutations --------------------

    def update_last_used(self, jti: str, at: datetime | None = None) -> bool:
        with store_errors("refresh.touch"), SQLAlchemyUnitOfWork() as uow:
            return uow.refresh_tokens.touch(jti, at or utcnow()) == 1

    def revoke(self, jti: str, reason: str) -> bool:
        with store_errors("refresh.revoke"), SQLAlchemyUnitOfWork() as uow:
            return (
                uow.refresh_tokens.revoke_where(
                    RefreshToken.jti == jti, reason=reason, now=utcnow()
                )
                == 1
            )

    def revoke_all_by_user_id(
        self, user_id: int, reason: str, exclude_jti: str | None = None
    ) -> int:
        criteria = [RefreshToken.user_id == user_id]
        if exclude_jti is not None:
            criteria.append(RefreshToken.jti != exclude_jti)
        with store_errors("refresh.revoke_all"), SQLAlchemyUnitOfWork() as uow:
            return uow.refresh_tokens.revoke_where(*criteria, reason=reason, now=utcnow())

    def revoke_all_by_device(self, user_id: int, device_id: str, reason: str) -> int:
        with store_errors("refresh.revoke_device"), SQLAlchemyUnitOfWork() as uow:
            return uow.refresh_tokens.revoke_where(
                RefreshToken.user_id == user_id,
                RefreshToken.device_id == device_id,
                reason=reason,
                now=utcnow(),
            )

    def revoke_token_family(self, root_jti: str, reason: str) -> int:
        with store_errors("refresh.revoke_family"), SQLAlchemyUnitOfWork() as uow:
            return uow.refresh_tokens.revoke_where(
                RefreshToken.root_jti == root_jti, reason=reason, now=utcnow()
            )

    # -------------------- Maintenance --------------------

    def cleanup(self, before: datetime | None = None) -> int:
        with store_errors("refresh.cleanup"), SQLAlchemyUnitOfWork() as uow:
            return uow.refresh_tokens.delete_expired(before or utcnow())

    def cleanup_revoked(self, days: int = 30) -> int:
        cutoff = utcnow() - timedelta(days=days)
        with store_errors("refresh.cleanup_revoked"), SQLAlchemyUnitOfWork() as uow:
            return uow.refresh_tokens.delete_revoked_before(cutoff)

    # -------------------- Stats --------------------

    def get_user_token_stats(self, user_id: int) -> TokenStats:
        with store_errors("refresh.user_stats"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            c = uow.refresh_tokens.counts(utcnow(), RefreshToken.user_id == user_id)
        return TokenStats(
            total=c["total"], active=c["active"], expired=c["expired"], revoked=c["revoked"]
        )

    def get_system_stats(self) -> SystemTokenStats:
        with store_errors("refresh.system_stats"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            c = uow.refresh_tokens.counts(utcnow())
        return SystemTokenStats(
            total_tokens=c["total"],
            active_tokens=c["active"],
            expired_tokens=c["expired"],
            revoked_tokens=c["revoked"],
            unique_users=c["users"],
            unique_devices=c["devices"],
        )

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from authcore.infra.sql.errors import store_errors
from authcore.models.revoked_token import RevokedToken
from authcore.services._shared.clock import utcnow
from authcore.services._shared.ports import RevocationList
from authcore.services.auth.dto import RevocationEntry, RevocationStats
from authcore.uow.sqlalchemy_uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork


class SQLRevocationList(RevocationList):
    """
    Authoritative revocation list stored in ``revoked_tokens``.

    ``add`` is idempotent: the unique ``jti`` constraint turns a concurrent
    duplicate insert into a no-op.
    """

    def add(self, entry: RevocationEntry) -> bool:
        with store_errors("revocation.add"):
            try:
                with SQLAlchemyUnitOfWork() as uow:
                    if uow.revoked_tokens.exists(jti=entry.jti):
                        return False
                    uow.revoked_tokens.add(RevokedToken.from_entry(entry))
            except IntegrityError:
                return False
        return True

    def is_revoked(self, jti: str) -> bool:
        with store_errors("revocation.is_revoked"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            return uow.revoked_tokens.exists(jti=jti)

    def get(self, jti: str) -> RevocationEntry | None:
        with store_errors("revocation.get"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            row = uow.revoked_tokens.find_one(jti=jti)
            return row.to_entry() if row else None

    def purge_expired(self) -> int:
        with store_errors("revocation.purge"), SQLAlchemyUnitOfWork() as uow:
            return uow.revoked_tokens.delete_expired(utcnow())

    def stats(self, user_id: int | None = None) -> RevocationStats:
        criteria = [] if user_id is None else [RevokedToken.user_id == user_id]
        with store_errors("revocation.stats"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            rows = uow.revoked_tokens.counts_by_type_and_reason(*criteria)
        return RevocationStats.from_rows(rows)

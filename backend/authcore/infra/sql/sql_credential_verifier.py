from __future__ import annotations

from authcore.infra.sql.errors import store_errors
from authcore.services._shared.ports import UserCredentialVerifier
from authcore.uow.sqlalchemy_uow import SQLAlchemyReadOnlyUnitOfWork


class SQLCredentialVerifier(UserCredentialVerifier):
    """Verify email/password against the ``users`` table (werkzeug hashes)."""

    def verify(self, identifier: str, secret: str) -> int | None:
        with store_errors("credentials.verify"), SQLAlchemyReadOnlyUnitOfWork() as uow:
            user = uow.users.authenticate(identifier, secret)
            return user.id if user else None

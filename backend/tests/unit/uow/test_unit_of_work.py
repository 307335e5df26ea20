"""Read/write and read-only Unit of Work semantics."""

from __future__ import annotations

import pytest
from authcore.models.user import User
from authcore.uow import SQLAlchemyReadOnlyUnitOfWork as ROuow
from authcore.uow import SQLAlchemyUnitOfWork as RWuow
from tests.factories.user import UserFactory


class TestSQLAlchemyUnitOfWork:
    def test_commits_on_clean_exit(self, session):
        with RWuow() as uow:
            uow.users.create(email="commit@example.com", password="Secret123!")

        session.remove()
        assert session.query(User).filter_by(email="commit@example.com").count() == 1

    def test_rolls_back_on_error(self, session):
        with pytest.raises(RuntimeError, match="boom"):
            with RWuow() as uow:
                uow.users.create(email="rollback@example.com", password="Secret123!")
                raise RuntimeError("boom")

        assert session.query(User).filter_by(email="rollback@example.com").count() == 0

    def test_repositories_share_the_session(self, db):
        with RWuow() as uow:
            assert uow.users.session is uow.refresh_tokens.session is uow.revoked_tokens.session


class TestSQLAlchemyReadOnlyUnitOfWork:
    def test_blocks_orm_flush_writes(self, session):
        with ROuow() as uow, pytest.raises(RuntimeError, match="ORM flush blocked"):
            uow.session.add(UserFactory.build())
            uow.session.flush()

    def test_allows_reads(self, session):
        UserFactory(email="reader@example.com")
        with ROuow() as uow:
            assert uow.users.get_by_email("READER@example.com") is not None

    def test_disallows_commit(self, session):
        with ROuow() as uow, pytest.raises(RuntimeError, match="does not allow commit"):
            uow.commit()

    def test_guard_is_removed_after_exit(self, session):
        with ROuow():
            pass
        # Writes through the regular UoW work again once the RO scope closed.
        with RWuow() as uow:
            uow.users.create(email="after@example.com", password="Secret123!")
        assert session.query(User).filter_by(email="after@example.com").count() == 1

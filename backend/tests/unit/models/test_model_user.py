"""Model tests for :class:`authcore.models.user.User`."""

from __future__ import annotations

import pytest
from authcore.models.user import User
from sqlalchemy.exc import IntegrityError
from tests.factories.user import UserFactory


class TestUserModel:
    def test_email_is_normalized(self, session):
        user = User(email="  Mixed@Example.COM ")
        user.password = "Secret123!"
        session.add(user)
        session.commit()
        assert user.email == "mixed@example.com"

    def test_invalid_email_rejected(self):
        with pytest.raises(ValueError, match="Email format"):
            User(email="not-an-email")

    def test_password_is_write_only_and_hashed(self):
        user = User(email="h@example.com")
        user.password = "Secret123!"
        assert user.password_hash != "Secret123!"
        assert user.verify_password("Secret123!")
        assert not user.verify_password("wrong")
        with pytest.raises(AttributeError):
            _ = user.password

    def test_empty_password_rejected(self):
        user = User(email="h@example.com")
        with pytest.raises(ValueError):
            user.password = ""

    def test_email_is_unique(self, session):
        UserFactory(email="dup@example.com")
        with pytest.raises(IntegrityError):
            UserFactory(email="DUP@example.com")
        session.rollback()

    def test_repr_uses_id(self, session):
        user = UserFactory()
        assert f"id={user.id}" in repr(user)

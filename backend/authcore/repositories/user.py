"""User repository for credential lookup."""

from __future__ import annotations

from authcore.models.user import User
from authcore.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`.

    It NEVER handles JWT or session creation, only credential lookup.
    """

    model = User

    def _filterable_fields(self):
        return {"id": User.id, "email": User.email}

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive).

        :param email: Email address to normalise and search.
        :returns: User instance or ``None`` when not found.
        """
        return self.find_one(email=(email or "").strip().lower())

    def authenticate(self, email: str, password: str) -> User | None:
        """Return the active user matching ``email``/``password``, else ``None``."""
        user = self.get_by_email(email)
        if user is None or not user.is_active or not user.verify_password(password):
            return None
        return user

    def create(self, *, email: str, password: str) -> User:
        user = User(email=email)
        user.password = password
        return self.add(user)

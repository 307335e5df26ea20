from __future__ import annotations

from typing import Protocol

from werkzeug.security import check_password_hash, generate_password_hash


class UserCredentialVerifier(Protocol):
    """
    External collaborator that checks login credentials.

    Password hashing and user storage live behind this port; the auth core only
    needs the resulting user id.
    """

    def verify(self, identifier: str, secret: str) -> int | None:
        """
        :param identifier: Login identifier (email).
        :param secret: Raw password.
        :returns: User id on success, ``None`` when the credentials are rejected.
        """


class InMemoryCredentialVerifier(UserCredentialVerifier):
    """Dictionary-backed verifier used in unit tests."""

    def __init__(self) -> None:
        self._users: dict[str, tuple[int, str]] = {}

    def add_user(self, user_id: int, identifier: str, password: str) -> None:
        self._users[identifier.strip().lower()] = (user_id, generate_password_hash(password))

    def verify(self, identifier: str, secret: str) -> int | None:
        entry = self._users.get((identifier or "").strip().lower())
        if entry is None or not secret:
            return None
        user_id, password_hash = entry
        return user_id if check_password_hash(password_hash, secret) else None

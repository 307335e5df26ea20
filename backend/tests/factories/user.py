"""Factory Boy definition for :class:`authcore.models.user.User`."""

from __future__ import annotations

import factory
from authcore.models.user import User
from tests.factories import BaseFactory
from werkzeug.security import generate_password_hash

DEFAULT_PASSWORD = "Passw0rd!"


class UserFactory(BaseFactory):
    """
    Build persisted :class:`authcore.models.user.User` instances.

    Pass ``raw_password=...`` to choose the password; it is hashed the same
    way the model setter does.
    """

    class Meta:
        model = User

    class Params:
        raw_password = DEFAULT_PASSWORD

    id = None  # let autoincrement handle it
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    password_hash = factory.LazyAttribute(lambda o: generate_password_hash(o.raw_password))
    is_active = True

"""Pytest fixtures for the token lifecycle service and its adapters.

The Flask app is built once per session with :class:`TestingConfig`
(in-memory SQLite, ephemeral RS256 keys, no Redis). Database-backed tests get
a freshly created schema per test; service tests run against the in-memory
store doubles so they never touch SQL.
"""

from __future__ import annotations

import os
from dataclasses import replace

import fakeredis
import pytest
from authcore.core.config import TestingConfig
from authcore.core.extensions import db as _db
from authcore.factory import create_app
from authcore.infra.jwt.flask_jwt_token_codec import FlaskJWTTokenCodec
from authcore.services._shared.ports import (
    InMemoryCredentialVerifier,
    InMemoryRefreshTokenStore,
    InMemoryRevocationList,
)
from authcore.services.auth.dto import Credentials, DeviceInfo
from authcore.services.auth.service import AuthenticationService

from tests.helpers.users import USER_EMAIL, USER_ID, USER_PASSWORD


@pytest.fixture(scope="session")
def app():
    """Create a Flask application configured for testing.

    Returns
    -------
    flask.Flask
        Application instance with :class:`TestingConfig` applied and logging
        noise reduced.
    """
    # Ensure env-based config does not leak into tests
    for name in ("DATABASE_URL", "REDIS_URL", "JWT_PRIVATE_KEY", "JWT_PUBLIC_KEY"):
        os.environ.pop(name, None)
    app = create_app(TestingConfig)
    app.logger.setLevel("WARNING")
    return app


@pytest.fixture
def app_ctx(app):
    """Push an application context for the duration of one test."""
    with app.app_context():
        yield app


@pytest.fixture
def db(app_ctx):
    """Create all tables for one test and drop them afterwards.

    Yields
    ------
    flask_sqlalchemy.SQLAlchemy
        Database extension bound to the testing application.
    """
    _db.create_all()
    yield _db
    _db.session.remove()
    _db.drop_all()


@pytest.fixture
def session(db):
    """Scoped session used by factories and direct assertions."""
    from tests.factories import SQLAlchemySession

    SQLAlchemySession.set(db.session)
    yield db.session
    SQLAlchemySession.set(None)


@pytest.fixture
def client(app, db):
    """HTTP test client with a ready schema."""
    return app.test_client()


@pytest.fixture(scope="session")
def faker():
    """Provide a :class:`faker.Faker` instance seeded for deterministic tests."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


@pytest.fixture
def fake_redis():
    """Provide a fresh FakeRedis instance for each test."""
    r = fakeredis.FakeRedis()
    r.flushall()
    return r


# -- In-memory service wiring ---------------------------------------------------


@pytest.fixture(scope="session")
def policy(app):
    """Token policy validated by the app factory."""
    return app.extensions["token_policy"]


@pytest.fixture(scope="session")
def codec(app):
    """Codec that pushes its own app context when needed."""
    return FlaskJWTTokenCodec(app)


@pytest.fixture
def refresh_store():
    return InMemoryRefreshTokenStore()


@pytest.fixture
def revocations():
    return InMemoryRevocationList()


@pytest.fixture
def credentials():
    verifier = InMemoryCredentialVerifier()
    verifier.add_user(USER_ID, USER_EMAIL, USER_PASSWORD)
    return verifier


@pytest.fixture
def make_service(codec, policy, refresh_store, revocations, credentials):
    """Build a service over the shared in-memory doubles.

    Keyword arguments override :class:`TokenPolicy` fields, e.g.
    ``make_service(enforce_device_affinity=True)``.
    """

    def _make(**overrides) -> AuthenticationService:
        return AuthenticationService(
            codec=codec,
            refresh_store=refresh_store,
            revocations=revocations,
            credentials=credentials,
            policy=replace(policy, **overrides) if overrides else policy,
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def device():
    return DeviceInfo(device_id="device-a", device_name="Laptop", device_type="desktop")


@pytest.fixture
def other_device():
    return DeviceInfo(device_id="device-b", device_name="Phone", device_type="mobile")


@pytest.fixture
def login(service, device):
    """Log the default user in and return the pair."""

    def _login(device_info: DeviceInfo | None = None):
        return service.login(Credentials(USER_EMAIL, USER_PASSWORD), device_info or device)

    return _login


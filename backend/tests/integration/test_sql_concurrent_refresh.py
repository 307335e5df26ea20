"""
Two workers presenting the same refresh token at the same time.

Each thread runs in its own app context (own scoped session and connection)
against a file-backed SQLite database, so the rotation compare-and-swap is
decided by the database rather than by a shared session.
"""

from __future__ import annotations

import threading

import pytest
from authcore.core.config import TestingConfig
from authcore.core.extensions import db as _db
from authcore.factory import create_app
from authcore.models.refresh_token import RefreshToken
from authcore.services._shared.errors import AuthError
from authcore.services.auth.dto import Credentials, DeviceInfo, RevocationReason
from authcore.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

EMAIL = "racer@example.com"
PASSWORD = "Sup3r-secret"


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'tokens.db'}"

    app = create_app(FileConfig)
    app.logger.setLevel("WARNING")
    with app.app_context():
        _db.create_all()
        with SQLAlchemyUnitOfWork() as uow:
            uow.users.create(email=EMAIL, password=PASSWORD)
    yield app
    with app.app_context():
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()


def test_concurrent_refresh_rotates_once_and_revokes_family(file_app):
    laptop = DeviceInfo(device_id="laptop", device_name="Laptop")
    service = file_app.extensions["auth_service"]
    with file_app.app_context():
        pair = service.login(Credentials(EMAIL, PASSWORD), laptop)

    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def worker() -> None:
        with file_app.app_context():
            barrier.wait(timeout=5)
            try:
                service.refresh(pair.refresh_token, laptop)
                outcome = "ok"
            except AuthError as exc:
                outcome = exc.kind.value
            finally:
                _db.session.remove()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["ok", "replay_detected"]

    with file_app.app_context():
        rows = _db.session.query(RefreshToken).all()
        assert len(rows) == 2
        assert len({row.root_jti for row in rows}) == 1
        assert all(row.status == "revoked" for row in rows)
        child = next(row for row in rows if row.parent_token_jti is not None)
        assert child.revoked_reason == RevocationReason.FAMILY_REVOCATION

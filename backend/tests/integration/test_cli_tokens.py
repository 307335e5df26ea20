"""``flask tokens`` maintenance commands."""

from __future__ import annotations

from datetime import timedelta

import pytest
from authcore.infra.sql.sql_revocation_list import SQLRevocationList
from authcore.models.user import User
from authcore.services._shared.clock import utcnow
from authcore.services.auth.dto import RevocationEntry, TokenType
from tests.factories.refresh_token import RefreshTokenFactory


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_init_db_is_idempotent(runner, db):
    result = runner.invoke(args=["tokens", "init-db"])
    assert result.exit_code == 0
    assert "Schema ready." in result.output


def test_create_user(runner, session):
    result = runner.invoke(
        args=["tokens", "create-user", "--email", "Dave@Example.com", "--password", "Secret123!"]
    )
    assert result.exit_code == 0, result.output
    user = session.query(User).filter_by(email="dave@example.com").one()
    assert user.verify_password("Secret123!")
    assert f"Created user {user.id}" in result.output


def test_create_user_rejects_duplicates(runner, session):
    args = ["tokens", "create-user", "--email", "erin@example.com", "--password", "Secret123!"]
    assert runner.invoke(args=args).exit_code == 0
    result = runner.invoke(args=args)
    assert result.exit_code == 2
    assert "already exists" in result.output


def test_create_user_rejects_invalid_email(runner, session):
    result = runner.invoke(
        args=["tokens", "create-user", "--email", "not-an-email", "--password", "Secret123!"]
    )
    assert result.exit_code == 2
    assert "--email" in result.output


def test_stats(runner, session):
    RefreshTokenFactory(user_id=1, device_id="d1")
    RefreshTokenFactory(user_id=2, device_id="d2", status="revoked", revoked_at=utcnow())

    result = runner.invoke(args=["tokens", "stats"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0] == "Token stats:"
    assert any(line.split() == ["total_tokens", "2"] for line in lines)
    assert any(line.split() == ["unique_users", "2"] for line in lines)

    result = runner.invoke(args=["tokens", "stats", "--user-id", "2"])
    assert "Token stats for user 2:" in result.output
    assert any(line.split() == ["revoked", "1"] for line in result.output.splitlines())


def test_stats_include_revocations(runner, session):
    revocations = SQLRevocationList()
    expires_at = utcnow() + timedelta(minutes=5)
    for jti, user_id, reason in (("a", 1, "logout"), ("b", 1, "logout"), ("c", 2, None)):
        revocations.add(
            RevocationEntry(
                jti=jti,
                token_type=TokenType.ACCESS,
                expires_at=expires_at,
                user_id=user_id,
                reason=reason,
            )
        )

    result = runner.invoke(args=["tokens", "stats"])
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "Revocations: 3" in lines
    assert any(line.split() == ["access", "3"] for line in lines)
    assert any(line.split() == ["logout", "2"] for line in lines)
    assert any(line.split() == ["unspecified", "1"] for line in lines)

    result = runner.invoke(args=["tokens", "stats", "--user-id", "2"])
    lines = result.output.splitlines()
    assert "Revocations for user 2: 1" in lines
    assert not any(line.split()[:1] == ["logout"] for line in lines)


def test_cleanup(runner, session):
    now = utcnow()
    RefreshTokenFactory(expires_at=now - timedelta(minutes=1))
    RefreshTokenFactory(status="revoked", revoked_at=now - timedelta(days=3))
    RefreshTokenFactory()

    result = runner.invoke(args=["tokens", "cleanup", "--revoked-days", "1"])
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0] == "Cleanup summary:"
    assert lines[1].split() == ["expired", "1"]
    assert lines[2].split() == ["revoked", "1"]


def test_cleanup_rejects_negative_days(runner, db):
    result = runner.invoke(args=["tokens", "cleanup", "--revoked-days", "-1"])
    assert result.exit_code == 2

"""
Login / refresh / replay lifecycle of :class:`AuthenticationService`.

Runs against the in-memory store doubles and the real Flask-JWT-Extended
codec (ephemeral RS256 keys from the testing config).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import timedelta

import pytest
from authcore.services._shared.clock import Deadline, utcnow
from authcore.services._shared.errors import (
    AuthenticationFailedError,
    AuthErrorKind,
    DeviceMismatchError,
    InvalidTokenError,
    ReplayDetectedError,
    StoreTimeoutError,
    TokenExpiredError,
)
from authcore.services.auth.dto import (
    Credentials,
    RevocationReason,
    TokenStatus,
    TokenType,
    hash_token,
)
from tests.helpers.users import USER_EMAIL, USER_ID, USER_PASSWORD


def _jti(codec, token: str) -> str:
    return codec.parse_unsafe(token).jti


class TestLogin:
    def test_login_issues_pair_with_root_record(self, login, codec, refresh_store, device):
        """User 42 logs in on D1: a root record is stored and TTLs follow the policy."""
        pair = login()

        access = codec.verify_token(pair.access_token, TokenType.ACCESS)
        refresh = codec.verify_token(pair.refresh_token, TokenType.REFRESH)
        assert access.subject_user_id == USER_ID
        assert refresh.subject_user_id == USER_ID
        assert access.expires_at - access.issued_at == timedelta(seconds=3600)
        assert refresh.expires_at - refresh.issued_at == timedelta(seconds=2_592_000)
        assert access.device_id == refresh.device_id == device.device_id

        record = refresh_store.find_by_jti(refresh.jti)
        assert record is not None
        assert record.parent_token_jti is None
        assert record.root_jti == record.jti
        assert record.status is TokenStatus.ACTIVE
        assert record.token_hash == hash_token(pair.refresh_token)
        assert record.expires_at == refresh.expires_at

    def test_access_and_refresh_have_distinct_jtis(self, login, codec):
        pair = login()
        assert _jti(codec, pair.access_token) != _jti(codec, pair.refresh_token)

    def test_wrong_password_is_rejected(self, service, device, refresh_store):
        with pytest.raises(AuthenticationFailedError) as excinfo:
            service.login(Credentials(USER_EMAIL, "not-the-password"), device)
        assert excinfo.value.kind is AuthErrorKind.AUTHENTICATION_FAILED
        assert refresh_store.get_system_stats().total_tokens == 0

    def test_unknown_user_is_rejected(self, service, device):
        with pytest.raises(AuthenticationFailedError):
            service.login(Credentials("nobody@example.com", USER_PASSWORD), device)

    def test_session_limit_revokes_oldest(self, make_service, device, refresh_store, codec):
        service = make_service(max_sessions_per_user=2)
        creds = Credentials(USER_EMAIL, USER_PASSWORD)
        first = service.login(creds, device)
        second = service.login(creds, device)
        third = service.login(creds, device)

        first_record = refresh_store.find_by_jti(_jti(codec, first.refresh_token))
        assert first_record.status is TokenStatus.REVOKED
        assert first_record.revoked_reason == RevocationReason.SESSION_LIMIT
        active = {r.jti for r in refresh_store.find_by_user_id(USER_ID)}
        assert active == {_jti(codec, second.refresh_token), _jti(codec, third.refresh_token)}

    def test_expired_deadline_fails_closed(self, service, device, refresh_store):
        with pytest.raises(StoreTimeoutError):
            service.login(
                Credentials(USER_EMAIL, USER_PASSWORD),
                device,
                deadline=Deadline.after(-1),
            )
        assert refresh_store.get_system_stats().total_tokens == 0


class TestRefresh:
    def test_refresh_rotates_and_links_child(self, login, service, codec, refresh_store, device):
        """refresh(J0) yields J1 with parent J0; J0 becomes revoked(rotated)."""
        pair = login()
        j0 = _jti(codec, pair.refresh_token)

        new_pair = service.refresh(pair.refresh_token, device)
        j1 = _jti(codec, new_pair.refresh_token)

        old = refresh_store.find_by_jti(j0)
        child = refresh_store.find_by_jti(j1)
        assert old.status is TokenStatus.REVOKED
        assert old.revoked_reason == RevocationReason.ROTATED
        assert child.status is TokenStatus.ACTIVE
        assert child.parent_token_jti == j0
        assert child.root_jti == j0
        assert [r.jti for r in refresh_store.find_by_user_id(USER_ID)] == [j1]
        assert codec.verify_token(new_pair.access_token, TokenType.ACCESS).subject_user_id == (
            USER_ID
        )

    def test_reuse_of_rotated_token_revokes_family(
        self, login, service, codec, refresh_store, device, caplog
    ):
        """A second refresh(J0) is a replay: J1 is revoked with family_revocation."""
        pair = login()
        j0 = _jti(codec, pair.refresh_token)
        j1 = _jti(codec, service.refresh(pair.refresh_token, device).refresh_token)

        with caplog.at_level(logging.WARNING, logger="authcore.security"):
            with pytest.raises(ReplayDetectedError) as excinfo:
                service.refresh(pair.refresh_token, device)

        assert excinfo.value.root_jti == j0
        assert excinfo.value.revoked_count == 1
        child = refresh_store.find_by_jti(j1)
        assert child.status is TokenStatus.REVOKED
        assert child.revoked_reason == RevocationReason.FAMILY_REVOCATION
        events = [r for r in caplog.records if r.name == "authcore.security"]
        assert any(getattr(r, "event", None) == "refresh_replay" for r in events)

    def test_family_depth_three_is_revoked_transitively(
        self, login, service, codec, refresh_store, device
    ):
        pair = login()
        root = _jti(codec, pair.refresh_token)
        chain = [pair]
        for _ in range(3):
            chain.append(service.refresh(chain[-1].refresh_token, device))
        leaf = _jti(codec, chain[-1].refresh_token)

        family = refresh_store.get_token_family(root)
        assert len(family) == 4
        assert {r.root_jti for r in family} == {root}

        assert service.revoke_token_family(root) == 1  # only the leaf was still active
        assert refresh_store.find_by_jti(leaf).status is TokenStatus.REVOKED
        assert all(r.is_revoked for r in refresh_store.get_token_family(root))

    def test_concurrent_refresh_has_exactly_one_winner(
        self, login, service, codec, refresh_store, device
    ):
        pair = login()
        root = _jti(codec, pair.refresh_token)
        barrier = threading.Barrier(2)
        outcomes: list[object] = []
        lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            try:
                result: object = service.refresh(pair.refresh_token, device)
            except ReplayDetectedError as exc:
                result = exc
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        errors = [o for o in outcomes if isinstance(o, ReplayDetectedError)]
        assert len(outcomes) == 2
        assert len(errors) == 1
        assert all(r.is_revoked for r in refresh_store.get_token_family(root))

    def test_access_token_cannot_refresh(self, login, service, device):
        pair = login()
        with pytest.raises(InvalidTokenError, match="Expected refresh token, got access token"):
            service.refresh(pair.access_token, device)

    def test_unknown_record_is_invalid(self, service, codec, device):
        token = codec.generate_token(
            user_id=USER_ID, token_type=TokenType.REFRESH, ttl=timedelta(minutes=5)
        )
        with pytest.raises(InvalidTokenError, match="not found"):
            service.refresh(token, device)

    def test_hash_mismatch_is_invalid(self, login, service, codec, refresh_store, device):
        pair = login()
        jti = _jti(codec, pair.refresh_token)
        record = refresh_store.find_by_jti(jti)
        refresh_store._by_jti[jti] = replace(record, token_hash=hash_token("something else"))

        with pytest.raises(InvalidTokenError, match="does not match"):
            service.refresh(pair.refresh_token, device)
        assert refresh_store.find_by_jti(jti).status is TokenStatus.ACTIVE

    def test_expired_record_is_rejected_without_rotation(
        self, login, service, codec, refresh_store, device
    ):
        pair = login()
        jti = _jti(codec, pair.refresh_token)
        record = refresh_store.find_by_jti(jti)
        refresh_store._by_jti[jti] = replace(record, expires_at=utcnow() - timedelta(seconds=1))

        with pytest.raises(TokenExpiredError):
            service.refresh(pair.refresh_token, device)
        assert refresh_store.find_by_jti(jti).status is TokenStatus.ACTIVE

    def test_device_affinity_off_allows_other_device(self, login, service, other_device):
        pair = login()
        assert service.refresh(pair.refresh_token, other_device).refresh_token

    def test_device_affinity_on_rejects_other_device(
        self, make_service, device, other_device, codec, refresh_store
    ):
        service = make_service(enforce_device_affinity=True)
        pair = service.login(Credentials(USER_EMAIL, USER_PASSWORD), device)

        with pytest.raises(DeviceMismatchError) as excinfo:
            service.refresh(pair.refresh_token, other_device)

        assert isinstance(excinfo.value, InvalidTokenError)
        record = refresh_store.find_by_jti(_jti(codec, pair.refresh_token))
        assert record.status is TokenStatus.ACTIVE
        assert service.refresh(pair.refresh_token, device).refresh_token

    def test_child_keeps_presenting_device(self, login, service, codec, refresh_store, device):
        pair = login()
        new_pair = service.refresh(pair.refresh_token, device)
        child = refresh_store.find_by_jti(_jti(codec, new_pair.refresh_token))
        assert child.device_info.device_id == device.device_id

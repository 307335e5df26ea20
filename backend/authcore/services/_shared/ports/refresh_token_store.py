from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Protocol

from authcore.services._shared.clock import utcnow
from authcore.services._shared.errors import StoreUnavailableError
from authcore.services.auth.dto import (
    DeviceInfo,
    RefreshTokenRecord,
    SystemTokenStats,
    TokenStats,
    TokenStatus,
)


class RotationResult(Enum):
    """Outcome of an atomic refresh rotation attempt."""

    OK = auto()
    NOT_FOUND = auto()
    EXPIRED = auto()
    REVOKED = auto()


class RefreshTokenStore(Protocol):
    """
    Stateful store for refresh-token records.

    ``revoke`` and ``rotate`` MUST be conditional on the stored status still
    being ``active`` (compare-and-swap), so that exactly one concurrent caller
    observes success.
    """

    def create(
        self,
        *,
        jti: str,
        user_id: int,
        token_hash: str,
        expires_at: datetime,
        device_info: DeviceInfo,
        parent_token_jti: str | None = None,
    ) -> bool:
        """
        Persist a new ``active`` record.

        The family root is inherited from the parent (or is ``jti`` itself).
        This MUST be executed *before* the token is handed to the client.
        """

    def rotate(self, *, old_jti: str, child: RefreshTokenRecord, now: datetime) -> RotationResult:
        """
        Atomically revoke ``old_jti`` (reason ``rotated``) and insert ``child``.

        :returns: ``RotationResult.OK`` only for the single winning caller.
        :raises StoreUnavailableError: The child cannot be stored (e.g. a ``jti`` or
            hash collision); the parent is left active.
        """

    def find_by_jti(self, jti: str) -> RefreshTokenRecord | None: ...

    def find_by_token_hash(self, token_hash: str) -> RefreshTokenRecord | None: ...

    def find_by_user_id(
        self, user_id: int, include_expired: bool = False
    ) -> list[RefreshTokenRecord]:
        """Active records for a user, oldest first (plus expired ones when asked)."""

    def find_by_user_id_and_device(self, user_id: int, device_id: str) -> list[RefreshTokenRecord]:
        """Active, unexpired records for a user on one device."""

    def update_last_used(self, jti: str, at: datetime | None = None) -> bool: ...

    def revoke(self, jti: str, reason: str) -> bool:
        """Conditional revoke. :returns: True only if this call flipped the status."""

    def revoke_all_by_user_id(
        self, user_id: int, reason: str, exclude_jti: str | None = None
    ) -> int: ...

    def revoke_all_by_device(self, user_id: int, device_id: str, reason: str) -> int: ...

    def get_token_family(self, root_jti: str) -> list[RefreshTokenRecord]:
        """Every record sharing ``root_jti``, in creation order."""

    def revoke_token_family(self, root_jti: str, reason: str) -> int: ...

    def cleanup(self, before: datetime | None = None) -> int:
        """Delete records whose ``expires_at`` is before ``before`` (default: now)."""

    def cleanup_revoked(self, days: int = 30) -> int:
        """Delete records revoked more than ``days`` ago."""

    def get_user_token_stats(self, user_id: int) -> TokenStats: ...

    def get_system_stats(self) -> SystemTokenStats: ...


class InMemoryRefreshTokenStore(RefreshTokenStore):
    """
    In-memory refresh token store with atomic rotation behavior.

    .. note::
       A single lock guards every mutation; the ``status`` check and the flip
       to ``revoked`` happen under it, which gives the same CAS semantics as
       the SQL adapter's conditional ``UPDATE``.
    """

    def __init__(self) -> None:
        self._by_jti: dict[str, RefreshTokenRecord] = {}
        self._by_hash: dict[str, str] = {}
        self._by_user: dict[int, list[str]] = {}
        self._by_root: dict[str, list[str]] = {}
        self._lock = threading.RLock()

    # ------------------------- helpers -------------------------

    def _insert(self, record: RefreshTokenRecord) -> bool:
        if record.jti in self._by_jti or record.token_hash in self._by_hash:
            return False
        self._by_jti[record.jti] = record
        self._by_hash[record.token_hash] = record.jti
        self._by_user.setdefault(record.user_id, []).append(record.jti)
        self._by_root.setdefault(record.root_jti, []).append(record.jti)
        return True

    def _revoke_locked(self, jti: str, reason: str, now: datetime) -> bool:
        current = self._by_jti.get(jti)
        if current is None or current.status is not TokenStatus.ACTIVE:
            return False
        self._by_jti[jti] = current.revoked(reason, now)
        return True

    def _delete_locked(self, jti: str) -> None:
        record = self._by_jti.pop(jti)
        self._by_hash.pop(record.token_hash, None)
        for index, key in ((self._by_user, record.user_id), (self._by_root, record.root_jti)):
            members = index.get(key)
            if members is None:
                continue
            members.remove(jti)
            if not members:
                del index[key]

    # -------------------------- API ----------------------------

    def create(
        self,
        *,
        jti: str,
        user_id: int,
        token_hash: str,
        expires_at: datetime,
        device_info: DeviceInfo,
        parent_token_jti: str | None = None,
    ) -> bool:
        with self._lock:
            root_jti = jti
            if parent_token_jti is not None:
                parent = self._by_jti.get(parent_token_jti)
                root_jti = parent.root_jti if parent else parent_token_jti
            return self._insert(
                RefreshTokenRecord(
                    jti=jti,
                    user_id=user_id,
                    token_hash=token_hash,
                    device_info=device_info,
                    created_at=utcnow(),
                    expires_at=expires_at,
                    root_jti=root_jti,
                    parent_token_jti=parent_token_jti,
                )
            )

    def rotate(self, *, old_jti: str, child: RefreshTokenRecord, now: datetime) -> RotationResult:
        with self._lock:
            old = self._by_jti.get(old_jti)
            if old is None:
                return RotationResult.NOT_FOUND
            if old.status is not TokenStatus.ACTIVE:
                return RotationResult.REVOKED
            if old.is_expired(now):
                return RotationResult.EXPIRED

            # Insert first: a colliding child leaves the parent untouched.
            if not self._insert(replace(child, root_jti=old.root_jti, parent_token_jti=old_jti)):
                raise StoreUnavailableError(
                    f"Refresh token {child.jti!r} collides with a stored record"
                )
            self._by_jti[old_jti] = old.revoked("rotated", now)
            return RotationResult.OK

    def find_by_jti(self, jti: str) -> RefreshTokenRecord | None:
        return self._by_jti.get(jti)

    def find_by_token_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        jti = self._by_hash.get(token_hash)
        return self._by_jti.get(jti) if jti else None

    def find_by_user_id(
        self, user_id: int, include_expired: bool = False
    ) -> list[RefreshTokenRecord]:
        now = utcnow()
        with self._lock:
            records = [self._by_jti[j] for j in self._by_user.get(user_id, [])]
        return [
            r
            for r in records
            if r.status is TokenStatus.ACTIVE and (include_expired or not r.is_expired(now))
        ]

    def find_by_user_id_and_device(self, user_id: int, device_id: str) -> list[RefreshTokenRecord]:
        return [r for r in self.find_by_user_id(user_id) if r.device_info.device_id == device_id]

    def update_last_used(self, jti: str, at: datetime | None = None) -> bool:
        with self._lock:
            record = self._by_jti.get(jti)
            if record is None:
                return False
            self._by_jti[jti] = record.touched(at)
            return True

    def revoke(self, jti: str, reason: str) -> bool:
        with self._lock:
            return self._revoke_locked(jti, reason, utcnow())

    def revoke_all_by_user_id(
        self, user_id: int, reason: str, exclude_jti: str | None = None
    ) -> int:
        now = utcnow()
        with self._lock:
            targets = [j for j in self._by_user.get(user_id, []) if j != exclude_jti]
            return sum(1 for j in targets if self._revoke_locked(j, reason, now))

    def revoke_all_by_device(self, user_id: int, device_id: str, reason: str) -> int:
        now = utcnow()
        with self._lock:
            targets = [
                j
                for j in self._by_user.get(user_id, [])
                if self._by_jti[j].device_info.device_id == device_id
            ]
            return sum(1 for j in targets if self._revoke_locked(j, reason, now))

    def get_token_family(self, root_jti: str) -> list[RefreshTokenRecord]:
        with self._lock:
            return [self._by_jti[j] for j in self._by_root.get(root_jti, [])]

    def revoke_token_family(self, root_jti: str, reason: str) -> int:
        now = utcnow()
        with self._lock:
            members = list(self._by_root.get(root_jti, []))
            return sum(1 for j in members if self._revoke_locked(j, reason, now))

    def cleanup(self, before: datetime | None = None) -> int:
        cutoff = before or utcnow()
        with self._lock:
            doomed = [j for j, r in self._by_jti.items() if r.expires_at < cutoff]
            for j in doomed:
                self._delete_locked(j)
            return len(doomed)

    def cleanup_revoked(self, days: int = 30) -> int:
        cutoff = utcnow() - timedelta(days=days)
        with self._lock:
            doomed = [
                j
                for j, r in self._by_jti.items()
                if r.is_revoked and r.revoked_at is not None and r.revoked_at <= cutoff
            ]
            for j in doomed:
                self._delete_locked(j)
            return len(doomed)

    def get_user_token_stats(self, user_id: int) -> TokenStats:
        now = utcnow()
        with self._lock:
            records = [self._by_jti[j] for j in self._by_user.get(user_id, [])]
        return TokenStats(
            total=len(records),
            active=sum(1 for r in records if r.is_active(now)),
            expired=sum(1 for r in records if r.is_expired(now)),
            revoked=sum(1 for r in records if r.is_revoked),
        )

    def get_system_stats(self) -> SystemTokenStats:
        now = utcnow()
        with self._lock:
            records = list(self._by_jti.values())
        return SystemTokenStats(
            total_tokens=len(records),
            active_tokens=sum(1 for r in records if r.is_active(now)),
            expired_tokens=sum(1 for r in records if r.is_expired(now)),
            revoked_tokens=sum(1 for r in records if r.is_revoked),
            unique_users=len({r.user_id for r in records}),
            unique_devices=len({r.device_info.device_id for r in records}),
        )

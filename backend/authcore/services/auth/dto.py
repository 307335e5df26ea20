# authcore/services/auth/dto.py
from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from authcore.services._shared.clock import utcnow

# ------------------------------- Enumerations ------------------------------ #


class TokenType(str, Enum):
    """Value of the ``type`` claim."""

    ACCESS = "access"
    REFRESH = "refresh"


class TokenStatus(str, Enum):
    """Stored status of a refresh record. ``expired`` is derived, never stored."""

    ACTIVE = "active"
    REVOKED = "revoked"


class RevocationReason:
    """Reason strings written to ``revoked_reason`` / revocation entries."""

    ROTATED = "rotated"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    FAMILY_REVOCATION = "family_revocation"
    DEVICE_LOGOUT = "device_logout"
    MANUAL = "manual_revocation"
    SESSION_LIMIT = "session_limit"
    SECURITY_BREACH = "security_breach"


def hash_token(raw_token: str) -> str:
    """One-way hash of a raw token for storage (never store the raw token)."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


# ------------------------------- Device info ------------------------------- #

_MOBILE_RE = re.compile(r"Mobile|iPhone|Android(?!.*Tablet)|Windows Phone", re.IGNORECASE)
_TABLET_RE = re.compile(r"iPad|Tablet|Kindle|Silk", re.IGNORECASE)
_PLATFORMS = (
    ("Windows", re.compile(r"Windows NT", re.IGNORECASE)),
    ("iOS", re.compile(r"iPhone|iPad|iPod", re.IGNORECASE)),
    ("macOS", re.compile(r"Macintosh|Mac OS X", re.IGNORECASE)),
    ("Android", re.compile(r"Android", re.IGNORECASE)),
    ("Linux", re.compile(r"Linux", re.IGNORECASE)),
)
# Order matters: Edge and Opera also advertise Chrome, Chrome advertises Safari.
_BROWSERS = (
    ("Edge", re.compile(r"Edg(e|A|iOS)?/", re.IGNORECASE)),
    ("Opera", re.compile(r"OPR/|Opera", re.IGNORECASE)),
    ("Firefox", re.compile(r"Firefox/|FxiOS/", re.IGNORECASE)),
    ("Chrome", re.compile(r"Chrome/|CriOS/", re.IGNORECASE)),
    ("Safari", re.compile(r"Safari/", re.IGNORECASE)),
)


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    """
    Client device attached to refresh records at login/rotation time.

    :param device_id: Stable device identifier (used for device-scoped revocation).
    :param device_name: Optional human-readable name ("Chrome on Windows").
    :param device_type: ``desktop`` | ``mobile`` | ``tablet`` (optional).
    :param user_agent: Raw ``User-Agent`` header.
    :param ip_address: Client IP address.
    :param platform: Operating system family.
    :param browser: Browser family.
    """

    device_id: str
    device_name: str | None = None
    device_type: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    platform: str | None = None
    browser: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.device_id, str) or not self.device_id.strip():
            raise ValueError("device_id is required.")
        if len(self.device_id) > 128:
            raise ValueError("device_id must be at most 128 characters.")

    @classmethod
    def from_user_agent(
        cls,
        user_agent: str,
        ip_address: str | None = None,
        *,
        device_id: str | None = None,
        device_name: str | None = None,
    ) -> DeviceInfo:
        """
        Build device info from request headers.

        When ``device_id`` is not supplied by the client a deterministic one is
        derived from the user agent and IP address.
        """
        ua = user_agent or ""
        platform = next((name for name, rx in _PLATFORMS if rx.search(ua)), None)
        browser = next((name for name, rx in _BROWSERS if rx.search(ua)), None)
        if _TABLET_RE.search(ua):
            device_type = "tablet"
        elif _MOBILE_RE.search(ua):
            device_type = "mobile"
        else:
            device_type = "desktop"

        if not device_id:
            digest = hashlib.sha256(f"{ua}|{ip_address or ''}".encode()).hexdigest()
            device_id = f"dev-{digest[:32]}"
        if not device_name:
            device_name = f"{browser or 'Unknown browser'} on {platform or 'unknown platform'}"

        return cls(
            device_id=device_id,
            device_name=device_name,
            device_type=device_type,
            user_agent=ua or None,
            ip_address=ip_address,
            platform=platform,
            browser=browser,
        )

    def matches(self, other: DeviceInfo | None) -> bool:
        """Two device infos match when they carry the same ``device_id``."""
        return other is not None and self.device_id == other.device_id

    def to_dict(self) -> dict[str, str | None]:
        return {
            "device_id": self.device_id,
            "device_name": self.device_name,
            "device_type": self.device_type,
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
            "platform": self.platform,
            "browser": self.browser,
        }


# ------------------------------ Token payloads ----------------------------- #


@dataclass(frozen=True, slots=True)
class JwtPayload:
    """
    Typed view of a decoded token.

    Core claims are fields; everything else lands in ``custom_claims``.

    :ivar subject_user_id: Owner user id (``sub``).
    :ivar jti: Unique token id; sole identity used for lookup/revocation.
    :ivar type: Access or refresh.
    :ivar issued_at: ``iat`` (UTC).
    :ivar expires_at: ``exp`` (UTC).
    :ivar issuer: ``iss``.
    :ivar audience: ``aud``.
    :ivar device_id: Device the token was minted for (optional).
    :ivar custom_claims: Read-only mapping of extension claims.
    """

    subject_user_id: int
    jti: str
    type: TokenType
    issued_at: datetime
    expires_at: datetime
    issuer: str
    audience: str
    device_id: str | None = None
    custom_claims: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the claim map so the payload stays immutable once minted.
        object.__setattr__(self, "custom_claims", MappingProxyType(dict(self.custom_claims)))

    def is_expired(self, now: datetime | None = None) -> bool:
        """
        Whether ``exp`` has been reached.

        The instant ``exp`` itself already counts as expired, which is how
        PyJWT rejects an ``exp`` claim with zero leeway. Store records and
        revocation entries use the same boundary.
        """
        return (now or utcnow()) >= self.expires_at

    def remaining_seconds(self, now: datetime | None = None) -> int:
        delta = self.expires_at - (now or utcnow())
        return max(0, int(delta.total_seconds()))

    def claim(self, name: str, default: Any = None) -> Any:
        return self.custom_claims.get(name, default)


@dataclass(frozen=True, slots=True)
class TokenPair:
    """
    Access/refresh tokens produced together.

    :param access_token: Encoded access JWT.
    :param refresh_token: Encoded refresh JWT.
    :param access_expires_at: Access token expiry (UTC).
    :param refresh_expires_at: Refresh token expiry (UTC).
    """

    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    token_type: str = "Bearer"

    def access_expires_in(self, now: datetime | None = None) -> int:
        return max(0, int((self.access_expires_at - (now or utcnow())).total_seconds()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.access_expires_in(),
            "access_expires_at": self.access_expires_at,
            "refresh_expires_at": self.refresh_expires_at,
        }


# ---------------------------- Persisted records ---------------------------- #


@dataclass(frozen=True, slots=True)
class RefreshTokenRecord:
    """
    Read-model of a persisted refresh token.

    :ivar jti: Refresh token identifier (unique).
    :ivar user_id: Owner user id.
    :ivar token_hash: SHA-256 of the raw token (unique).
    :ivar device_info: Device bound at creation.
    :ivar created_at: Creation time (UTC).
    :ivar expires_at: Absolute expiration (UTC), fixed at creation.
    :ivar root_jti: Root of the rotation family (own jti for roots).
    :ivar parent_token_jti: Token rotated to produce this one (``None`` for roots).
    :ivar status: ``active`` or ``revoked`` (terminal).
    """

    jti: str
    user_id: int
    token_hash: str
    device_info: DeviceInfo
    created_at: datetime
    expires_at: datetime
    root_jti: str
    parent_token_jti: str | None = None
    status: TokenStatus = TokenStatus.ACTIVE
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None
    revoked_reason: str | None = None

    @property
    def is_root(self) -> bool:
        return self.parent_token_jti is None

    @property
    def is_revoked(self) -> bool:
        return self.status is TokenStatus.REVOKED

    def is_expired(self, now: datetime | None = None) -> bool:
        # Inclusive at expires_at, like JwtPayload.is_expired.
        return (now or utcnow()) >= self.expires_at

    def is_active(self, now: datetime | None = None) -> bool:
        return not self.is_revoked and not self.is_expired(now)

    def revoked(self, reason: str, at: datetime | None = None) -> RefreshTokenRecord:
        """Return the revoked copy; revoking twice keeps the first reason."""
        if self.is_revoked:
            return self
        return replace(
            self,
            status=TokenStatus.REVOKED,
            revoked_at=at or utcnow(),
            revoked_reason=reason,
        )

    def touched(self, at: datetime | None = None) -> RefreshTokenRecord:
        return replace(self, last_used_at=at or utcnow())


@dataclass(frozen=True, slots=True)
class RevocationEntry:
    """
    Write-once revocation marker for a token ``jti``.

    Entries are useless (and purged) once ``expires_at`` passes.
    """

    jti: str
    token_type: TokenType
    expires_at: datetime
    revoked_at: datetime = field(default_factory=utcnow)
    user_id: int | None = None
    reason: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def remaining_seconds(self, now: datetime | None = None) -> int:
        return max(0, int((self.expires_at - (now or utcnow())).total_seconds()))


# ------------------------------ Input DTOs --------------------------------- #


@dataclass(frozen=True, slots=True)
class Credentials:
    """
    Login input handed to the credential verifier.

    :param identifier: Login identifier (email).
    :param secret: Raw password (to be verified, never stored).
    """

    identifier: str
    secret: str

    def __repr__(self) -> str:
        return f"Credentials(identifier={self.identifier!r}, secret='***')"


@dataclass(frozen=True, slots=True)
class TokenStats:
    """Per-user refresh token counters."""

    total: int = 0
    active: int = 0
    expired: int = 0
    revoked: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "active": self.active,
            "expired": self.expired,
            "revoked": self.revoked,
        }


@dataclass(frozen=True, slots=True)
class SystemTokenStats:
    """System-wide refresh token counters."""

    total_tokens: int = 0
    active_tokens: int = 0
    expired_tokens: int = 0
    revoked_tokens: int = 0
    unique_users: int = 0
    unique_devices: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_tokens": self.total_tokens,
            "active_tokens": self.active_tokens,
            "expired_tokens": self.expired_tokens,
            "revoked_tokens": self.revoked_tokens,
            "unique_users": self.unique_users,
            "unique_devices": self.unique_devices,
        }


UNSPECIFIED_REASON = "unspecified"


@dataclass(frozen=True, slots=True)
class RevocationStats:
    """
    Revocation list counters.

    Entries written without a reason are counted under ``"unspecified"``.
    """

    total: int = 0
    by_type: Mapping[str, int] = field(default_factory=dict)
    by_reason: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: Any) -> RevocationStats:
        """Fold ``(token_type, reason, count)`` rows into counters."""
        by_type: dict[str, int] = {}
        by_reason: dict[str, int] = {}
        total = 0
        for token_type, reason, count in rows:
            count = int(count)
            total += count
            by_type[token_type] = by_type.get(token_type, 0) + count
            key = reason or UNSPECIFIED_REASON
            by_reason[key] = by_reason.get(key, 0) + count
        return cls(total=total, by_type=by_type, by_reason=by_reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_type": dict(sorted(self.by_type.items())),
            "by_reason": dict(sorted(self.by_reason.items())),
        }

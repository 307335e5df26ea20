# authcore/services/auth/service.py
from __future__ import annotations

import hmac
import logging
from datetime import datetime

from authcore.services._shared.base import BaseService, ServiceContext
from authcore.services._shared.clock import Deadline
from authcore.services._shared.errors import (
    AuthenticationFailedError,
    AuthError,
    DeviceMismatchError,
    InvalidTokenError,
    ReplayDetectedError,
    TokenExpiredError,
    TokenGenerationError,
    TokenRevokedError,
)
from authcore.services._shared.ports.credential_verifier import UserCredentialVerifier
from authcore.services._shared.ports.refresh_token_store import (
    RefreshTokenStore,
    RotationResult,
)
from authcore.services._shared.ports.revocation_list import RevocationList
from authcore.services._shared.ports.token_codec import TokenCodec
from authcore.services.auth.dto import (
    Credentials,
    DeviceInfo,
    JwtPayload,
    RefreshTokenRecord,
    RevocationEntry,
    RevocationReason,
    RevocationStats,
    SystemTokenStats,
    TokenPair,
    TokenStats,
    TokenType,
    hash_token,
)
from authcore.services.auth.policy import TokenPolicy

logger = logging.getLogger(__name__)
security_log = logging.getLogger("authcore.security")


class AuthenticationService(BaseService):
    """
    Token lifecycle service (login / refresh / logout / revocation).

    This service issues and verifies JWTs via a pluggable :class:`TokenCodec`,
    manages refresh records via :class:`RefreshTokenStore` (atomic rotation +
    replay detection), and rejects revoked access tokens via
    :class:`RevocationList`.

    Every public method accepts an optional ``deadline``; when it passes
    between store calls the method raises ``StoreTimeoutError`` and no token
    is accepted.
    """

    def __init__(
        self,
        *,
        codec: TokenCodec,
        refresh_store: RefreshTokenStore,
        revocations: RevocationList,
        credentials: UserCredentialVerifier,
        policy: TokenPolicy,
        ctx: ServiceContext | None = None,
    ) -> None:
        """
        Initialize the service with its dependencies.

        :param codec: Adapter for signing/verifying JWTs.
        :param refresh_store: Stateful store for refresh records (atomic rotation).
        :param revocations: Denylist for token ``jti`` values.
        :param credentials: External credential verifier used by ``login``.
        :param policy: Immutable token policy (TTLs, issuer, device affinity).
        """
        super().__init__(ctx=ctx)
        self.codec = codec
        self.refresh_store = refresh_store
        self.revocations = revocations
        self.credentials = credentials
        self.policy = policy

    def with_context(self, ctx: ServiceContext) -> AuthenticationService:
        """Return a shallow copy bound to a request-scoped context."""
        return AuthenticationService(
            codec=self.codec,
            refresh_store=self.refresh_store,
            revocations=self.revocations,
            credentials=self.credentials,
            policy=self.policy,
            ctx=ctx,
        )

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    def login(
        self,
        credentials: Credentials,
        device_info: DeviceInfo,
        *,
        deadline: Deadline | None = None,
    ) -> TokenPair:
        """
        Authenticate credentials and issue a fresh token pair.

        The root refresh record is persisted *before* the pair is returned.

        :param credentials: Login identifier and secret.
        :param device_info: Client device bound to the new session.
        :returns: Access/Refresh token pair.
        :raises AuthenticationFailedError: If credentials are rejected.
        """
        self.check_deadline(deadline, "login.verify")
        user_id = self.credentials.verify(credentials.identifier, credentials.secret)
        if user_id is None:
            logger.info(
                "Login rejected",
                extra={"event": "login_failed", **self.ctx.log_extra()},
            )
            raise AuthenticationFailedError()

        self.check_deadline(deadline, "login.session_limit")
        self._enforce_session_limit(user_id)

        self.check_deadline(deadline, "login.issue")
        pair, root = self._mint_pair(user_id, device_info)
        if not self.refresh_store.create(
            jti=root.jti,
            user_id=user_id,
            token_hash=root.token_hash,
            expires_at=root.expires_at,
            device_info=device_info,
            parent_token_jti=None,
        ):
            raise TokenGenerationError("Unable to persist refresh token")
        # The pair is never handed out once the budget is spent.
        self.check_deadline(deadline, "login.issue")

        logger.info(
            "Login succeeded",
            extra={
                "event": "login",
                "user_id": user_id,
                "jti": root.jti,
                "device_id": device_info.device_id,
                **self.ctx.log_extra(),
            },
        )
        return pair

    # ------------------------------------------------------------------ #
    # Refresh with atomic rotation
    # ------------------------------------------------------------------ #

    def refresh(
        self,
        refresh_token: str,
        device_info: DeviceInfo,
        *,
        deadline: Deadline | None = None,
    ) -> TokenPair:
        """
        Rotate a refresh token and emit a new token pair.

        Security
        --------
        - Requires a valid refresh token whose server-side record is active.
        - Rotation is a compare-and-swap in the store: of two concurrent calls
          presenting the same token exactly one wins.
        - Presenting an already revoked token is treated as theft: the whole
          rotation family is revoked and :class:`ReplayDetectedError` raised.

        :raises InvalidTokenError: Unknown record, hash mismatch, wrong type.
        :raises TokenExpiredError: Token or record has expired.
        :raises DeviceMismatchError: Device affinity enforced and violated.
        :raises ReplayDetectedError: Token reuse detected.
        """
        payload = self.codec.verify_token(refresh_token, TokenType.REFRESH)

        self.check_deadline(deadline, "refresh.lookup")
        record = self._load_record(payload, refresh_token)
        now = self.now_utc()

        if record.is_revoked:
            self._handle_replay(record)
        if record.is_expired(now):
            raise TokenExpiredError("Refresh token has expired")
        if self.policy.enforce_device_affinity and not record.device_info.matches(device_info):
            security_log.warning(
                "Refresh presented from another device",
                extra={
                    "event": "device_mismatch",
                    "user_id": record.user_id,
                    "jti": record.jti,
                    "device_id": device_info.device_id,
                    **self.ctx.log_extra(),
                },
            )
            raise DeviceMismatchError()

        self.check_deadline(deadline, "refresh.rotate")
        pair, child = self._mint_pair(record.user_id, device_info, parent=record)
        result = self.refresh_store.rotate(old_jti=record.jti, child=child, now=now)

        if result is RotationResult.REVOKED:
            # Lost the race or the record was revoked since the lookup.
            self._handle_replay(record)
        if result is RotationResult.EXPIRED:
            raise TokenExpiredError("Refresh token has expired")
        if result is RotationResult.NOT_FOUND:
            raise InvalidTokenError("Refresh token not found")

        logger.info(
            "Refresh token rotated",
            extra={
                "event": "refresh",
                "user_id": record.user_id,
                "jti": child.jti,
                "root_jti": record.root_jti,
                **self.ctx.log_extra(),
            },
        )
        return pair

    # ------------------------------------------------------------------ #
    # Logout & revocation
    # ------------------------------------------------------------------ #

    def logout(
        self,
        refresh_token: str,
        all_devices: bool = False,
        access_token: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> int:
        """
        End the presented session (or every session of its owner).

        :param refresh_token: Refresh token of the session to end.
        :param all_devices: Revoke every active record of the user.
        :param access_token: Optional access token to add to the revocation list.
        :returns: Number of refresh records revoked.
        """
        payload = self.codec.verify_token(refresh_token, TokenType.REFRESH)
        access_payload = None
        if access_token:
            access_payload = self.codec.verify_token(
                access_token, TokenType.ACCESS, allow_expired=True
            )
            if access_payload.subject_user_id != payload.subject_user_id:
                raise InvalidTokenError("Access token does not belong to the session owner")

        self.check_deadline(deadline, "logout.lookup")
        record = self._load_record(payload, refresh_token)

        self.check_deadline(deadline, "logout.revoke")
        if all_devices:
            count = self.refresh_store.revoke_all_by_user_id(
                record.user_id, RevocationReason.LOGOUT_ALL
            )
        else:
            count = int(self.refresh_store.revoke(record.jti, RevocationReason.LOGOUT))

        if access_payload is not None:
            self.revocations.add(
                RevocationEntry(
                    jti=access_payload.jti,
                    token_type=TokenType.ACCESS,
                    expires_at=access_payload.expires_at,
                    user_id=access_payload.subject_user_id,
                    reason=RevocationReason.LOGOUT,
                )
            )

        logger.info(
            "Logout",
            extra={
                "event": "logout_all" if all_devices else "logout",
                "user_id": record.user_id,
                "jti": record.jti,
                "count": count,
                **self.ctx.log_extra(),
            },
        )
        return count

    def revoke_token(self, token: str, reason: str = RevocationReason.MANUAL) -> bool:
        """
        Revoke a single token of either type.

        Access tokens are added to the revocation list; refresh tokens have
        their record transitioned to ``revoked``. Expired tokens are accepted
        as long as their signature verifies.

        :returns: ``True`` if this call changed any state.
        """
        payload = self.codec.verify_token(token, allow_expired=True)
        if payload.type is TokenType.ACCESS:
            return self.revocations.add(
                RevocationEntry(
                    jti=payload.jti,
                    token_type=TokenType.ACCESS,
                    expires_at=payload.expires_at,
                    user_id=payload.subject_user_id,
                    reason=reason,
                )
            )
        return self.refresh_store.revoke(payload.jti, reason)

    def revoke_all_user_tokens(
        self,
        user_id: int,
        exclude_jti: str | None = None,
        reason: str = RevocationReason.LOGOUT_ALL,
    ) -> int:
        """Revoke every active record of ``user_id`` except ``exclude_jti``."""
        count = self.refresh_store.revoke_all_by_user_id(user_id, reason, exclude_jti)
        logger.info(
            "User tokens revoked",
            extra={"event": "revoke_all", "user_id": user_id, "count": count, "reason": reason},
        )
        return count

    def revoke_device_tokens(
        self, user_id: int, device_id: str, reason: str = RevocationReason.DEVICE_LOGOUT
    ) -> int:
        count = self.refresh_store.revoke_all_by_device(user_id, device_id, reason)
        logger.info(
            "Device tokens revoked",
            extra={
                "event": "revoke_device",
                "user_id": user_id,
                "device_id": device_id,
                "count": count,
            },
        )
        return count

    def revoke_token_family(
        self, root_jti: str, reason: str = RevocationReason.FAMILY_REVOCATION
    ) -> int:
        """Revoke every not-yet-revoked record descending from ``root_jti``."""
        return self.refresh_store.revoke_token_family(root_jti, reason)

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def validate_access_token(
        self,
        token: str,
        check_blacklist: bool = True,
        *,
        deadline: Deadline | None = None,
    ) -> JwtPayload:
        """
        Verify an access token and, optionally, its revocation status.

        :raises TokenRevokedError: The ``jti`` is on the revocation list.
        :raises StoreUnavailableError: The revocation list cannot be consulted.
        """
        payload = self.codec.verify_token(token, TokenType.ACCESS)
        if check_blacklist:
            self.check_deadline(deadline, "validate.revocation")
            revoked = self.revocations.is_revoked(payload.jti)
            # A lookup that outlived the budget is not trusted either way.
            self.check_deadline(deadline, "validate.revocation")
            if revoked:
                raise TokenRevokedError()
        return payload

    def is_access_token_valid(self, token: str, *, deadline: Deadline | None = None) -> bool:
        """Non-raising variant of :meth:`validate_access_token` (fails closed)."""
        try:
            self.validate_access_token(token, deadline=deadline)
        except AuthError as exc:
            logger.debug("Access token rejected", extra={"reason": exc.kind.value})
            return False
        return True

    def validate_refresh_token(
        self,
        token: str,
        touch: bool = True,
        *,
        deadline: Deadline | None = None,
    ) -> RefreshTokenRecord:
        """
        Check that a refresh token maps to an active, unexpired record.

        Does not rotate. Unlike :meth:`refresh`, a revoked record is reported
        with :class:`TokenRevokedError` and no family revocation.

        :param touch: Record ``last_used_at``.
        """
        payload = self.codec.verify_token(token, TokenType.REFRESH)
        self.check_deadline(deadline, "validate_refresh.lookup")
        record = self._load_record(payload, token)
        self.check_deadline(deadline, "validate_refresh.lookup")
        now = self.now_utc()
        if record.is_revoked:
            raise TokenRevokedError("Refresh token has been revoked")
        if record.is_expired(now):
            raise TokenExpiredError("Refresh token has expired")
        if touch:
            self.refresh_store.update_last_used(record.jti, now)
            record = record.touched(now)
        return record

    # ------------------------------------------------------------------ #
    # Predicates (no side effects)
    # ------------------------------------------------------------------ #

    def is_token_revoked(self, token: str) -> bool:
        """Unparsable tokens count as revoked."""
        try:
            payload = self.codec.parse_unsafe(token)
        except InvalidTokenError:
            return True
        if payload.type is TokenType.REFRESH:
            record = self.refresh_store.find_by_jti(payload.jti)
            return record is None or record.is_revoked
        return self.revocations.is_revoked(payload.jti)

    def get_token_remaining_seconds(self, token: str) -> int:
        try:
            return self.codec.parse_unsafe(token).remaining_seconds(self.now_utc())
        except InvalidTokenError:
            return 0

    def is_token_near_expiry(self, token: str, threshold_seconds: int = 300) -> bool:
        remaining = self.get_token_remaining_seconds(token)
        return 0 < remaining <= threshold_seconds

    def is_token_owned_by(self, token: str, user_id: int) -> bool:
        try:
            return self.codec.parse_unsafe(token).subject_user_id == user_id
        except InvalidTokenError:
            return False

    def is_token_from_device(self, token: str, device_info: DeviceInfo) -> bool:
        try:
            return self.codec.parse_unsafe(token).device_id == device_info.device_id
        except InvalidTokenError:
            return False

    # ------------------------------------------------------------------ #
    # Sessions, maintenance & stats
    # ------------------------------------------------------------------ #

    def list_user_sessions(self, user_id: int) -> list[RefreshTokenRecord]:
        """Active refresh records of a user, oldest first."""
        return self.refresh_store.find_by_user_id(user_id)

    def cleanup_expired_tokens(self, before: datetime | None = None) -> int:
        """
        Delete expired refresh records and purge lapsed revocation entries.

        :returns: Total rows removed.
        """
        records = self.refresh_store.cleanup(before)
        entries = self.revocations.purge_expired()
        logger.info(
            "Expired tokens cleaned",
            extra={"event": "cleanup", "count": records + entries},
        )
        return records + entries

    def cleanup_revoked_tokens(self, days: int = 30) -> int:
        count = self.refresh_store.cleanup_revoked(days)
        logger.info("Revoked tokens cleaned", extra={"event": "cleanup_revoked", "count": count})
        return count

    def get_user_token_stats(self, user_id: int) -> TokenStats:
        return self.refresh_store.get_user_token_stats(user_id)

    def get_system_stats(self) -> SystemTokenStats:
        return self.refresh_store.get_system_stats()

    def get_revocation_stats(self, user_id: int | None = None) -> RevocationStats:
        """Revocation list counters, system-wide or for one user."""
        return self.revocations.stats(user_id)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _mint_pair(
        self,
        user_id: int,
        device_info: DeviceInfo,
        *,
        parent: RefreshTokenRecord | None = None,
    ) -> tuple[TokenPair, RefreshTokenRecord]:
        """
        Sign an access/refresh pair and build the matching refresh record.

        The record is *not* persisted here; callers either ``create`` it
        (login) or hand it to ``rotate`` (refresh).
        """
        refresh_jti = self.codec.new_jti()
        refresh = self.codec.generate_token(
            user_id=user_id,
            token_type=TokenType.REFRESH,
            ttl=self.policy.refresh_ttl,
            device_id=device_info.device_id,
            jti=refresh_jti,
        )
        access = self.codec.generate_token(
            user_id=user_id,
            token_type=TokenType.ACCESS,
            ttl=self.policy.access_ttl,
            device_id=device_info.device_id,
        )
        refresh_claims = self.codec.parse_unsafe(refresh)
        access_claims = self.codec.parse_unsafe(access)

        record = RefreshTokenRecord(
            jti=refresh_jti,
            user_id=user_id,
            token_hash=hash_token(refresh),
            device_info=device_info,
            created_at=refresh_claims.issued_at,
            expires_at=refresh_claims.expires_at,
            root_jti=parent.root_jti if parent else refresh_jti,
            parent_token_jti=parent.jti if parent else None,
        )
        pair = TokenPair(
            access_token=access,
            refresh_token=refresh,
            access_expires_at=access_claims.expires_at,
            refresh_expires_at=refresh_claims.expires_at,
        )
        return pair, record

    def _load_record(self, payload: JwtPayload, raw_token: str) -> RefreshTokenRecord:
        record = self.refresh_store.find_by_jti(payload.jti)
        if record is None:
            raise InvalidTokenError("Refresh token not found")
        if not hmac.compare_digest(record.token_hash, hash_token(raw_token)):
            raise InvalidTokenError("Refresh token does not match stored record")
        if record.user_id != payload.subject_user_id:
            raise InvalidTokenError("Refresh token subject mismatch")
        return record

    def _enforce_session_limit(self, user_id: int) -> None:
        limit = self.policy.max_sessions_per_user
        if limit is None:
            return
        active = self.refresh_store.find_by_user_id(user_id)
        overflow = len(active) - limit + 1
        if overflow <= 0:
            return
        for record in sorted(active, key=lambda r: r.created_at)[:overflow]:
            self.refresh_store.revoke(record.jti, RevocationReason.SESSION_LIMIT)
        logger.info(
            "Session limit reached; oldest sessions revoked",
            extra={"event": "session_limit", "user_id": user_id, "count": overflow},
        )

    def _handle_replay(self, record: RefreshTokenRecord) -> None:
        """Revoke the whole family, log a security event and raise."""
        count = self.refresh_store.revoke_token_family(
            record.root_jti, RevocationReason.FAMILY_REVOCATION
        )
        security_log.warning(
            "Refresh token replay detected; family revoked",
            extra={
                "event": "refresh_replay",
                "user_id": record.user_id,
                "jti": record.jti,
                "root_jti": record.root_jti,
                "count": count,
                **self.ctx.log_extra(),
            },
        )
        raise ReplayDetectedError(root_jti=record.root_jti, revoked_count=count)

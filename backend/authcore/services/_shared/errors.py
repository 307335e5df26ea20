"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and should never import or depend
on Flask, HTTP, or SQLAlchemy directly. They serve as stable contracts between
stores, token codecs, and the authentication service.

The translation to HTTP responses (RFC 7807) is handled by
``authcore/core/errors.py``.
"""

from __future__ import annotations

from enum import Enum

# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - They can be safely raised from stores, codecs or domain logic.
    - The API layer will later translate them to problem responses.
    """

    pass


class PolicyConfigurationError(ValueError):
    """Raised at startup when the token policy or key material is inconsistent."""


# --------------------------------------------------------------------------- #
# Authentication errors
# --------------------------------------------------------------------------- #


class AuthErrorKind(str, Enum):
    """Tag carried by every :class:`AuthError` so callers can branch without isinstance."""

    GENERATION_FAILED = "generation_failed"
    INVALID_TOKEN = "invalid_token"
    TOKEN_EXPIRED = "token_expired"
    VALIDATION_FAILED = "validation_failed"
    TOKEN_REVOKED = "token_revoked"
    DEVICE_MISMATCH = "device_mismatch"
    REPLAY_DETECTED = "replay_detected"
    AUTHENTICATION_FAILED = "authentication_failed"
    STORE_UNAVAILABLE = "store_unavailable"
    STORE_TIMEOUT = "store_timeout"


class AuthError(ServiceError):
    """
    Base class for token lifecycle failures.

    :param message: Human-readable explanation (safe for clients).
    :type message: str
    """

    kind: AuthErrorKind = AuthErrorKind.INVALID_TOKEN
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class TokenGenerationError(AuthError):
    """Signing failed; fatal for the current call and never retried."""

    kind = AuthErrorKind.GENERATION_FAILED
    default_message = "Unable to generate token"


class InvalidTokenError(AuthError):
    """Malformed token, bad signature, wrong type, or unknown server-side record."""

    kind = AuthErrorKind.INVALID_TOKEN
    default_message = "Invalid token"


class TokenRevokedError(InvalidTokenError):
    """Token is syntactically valid but its ``jti`` has been revoked."""

    kind = AuthErrorKind.TOKEN_REVOKED
    default_message = "Token has been revoked"


class DeviceMismatchError(InvalidTokenError):
    """Refresh presented from a device other than the one bound to the session."""

    kind = AuthErrorKind.DEVICE_MISMATCH
    default_message = "Device binding mismatch. Please re-authenticate."


class TokenExpiredError(AuthError):
    """Time-based rejection; the caller is expected to re-authenticate."""

    kind = AuthErrorKind.TOKEN_EXPIRED
    default_message = "Token has expired"


class TokenValidationError(AuthError):
    """Issuer or audience does not match the configured policy."""

    kind = AuthErrorKind.VALIDATION_FAILED
    default_message = "Token issuer or audience mismatch"


class ReplayDetectedError(AuthError):
    """
    An already-consumed refresh token was presented again.

    The whole rotation family has been revoked by the time this is raised.

    :param root_jti: Root of the revoked family.
    :param revoked_count: Number of records transitioned by the family revocation.
    """

    kind = AuthErrorKind.REPLAY_DETECTED
    default_message = "Refresh token reuse detected. Please sign in again."

    def __init__(
        self,
        message: str | None = None,
        *,
        root_jti: str | None = None,
        revoked_count: int = 0,
    ) -> None:
        super().__init__(message)
        self.root_jti = root_jti
        self.revoked_count = revoked_count


class AuthenticationFailedError(AuthError):
    """Credentials were rejected by the credential verifier."""

    kind = AuthErrorKind.AUTHENTICATION_FAILED
    default_message = "Invalid credentials"


class StoreUnavailableError(AuthError):
    """A persistence or cache backend failed; callers must deny (fail closed)."""

    kind = AuthErrorKind.STORE_UNAVAILABLE
    default_message = "Token store unavailable"


class StoreTimeoutError(StoreUnavailableError):
    """The caller-supplied deadline passed while talking to a store."""

    kind = AuthErrorKind.STORE_TIMEOUT
    default_message = "Token store deadline exceeded"

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Protocol
from uuid import uuid4

from authcore.services.auth.dto import JwtPayload, TokenType


class TokenCodec(Protocol):
    """
    Port for signing and verifying JWTs. Implementations are stateless.

    Errors follow the auth taxonomy in :mod:`authcore.services._shared.errors`.
    """

    def generate_token(
        self,
        *,
        user_id: int,
        token_type: TokenType,
        ttl: timedelta,
        device_id: str | None = None,
        custom_claims: Mapping[str, Any] | None = None,
        jti: str | None = None,
    ) -> str:
        """
        Build standard claims (``iss, aud, iat, nbf, exp, jti, type, sub``),
        merge ``custom_claims`` and sign.

        :raises TokenGenerationError: On signing failure or non-positive ``ttl``.
        """

    def verify_token(
        self,
        token: str,
        expected_type: TokenType | None = None,
        *,
        allow_expired: bool = False,
    ) -> JwtPayload:
        """
        Verify structure, signature, expiry, issuer/audience and type.

        ``allow_expired`` skips only the ``exp`` check (used to revoke tokens
        that have already lapsed).

        :raises InvalidTokenError: Malformed, bad signature, or wrong type.
        :raises TokenExpiredError: ``exp`` has passed.
        :raises TokenValidationError: Issuer/audience mismatch.
        """

    def parse_unsafe(self, token: str) -> JwtPayload:
        """Decode claims **without** verifying the signature (diagnostics only)."""

    def new_jti(self) -> str:
        """Generate a new globally unique token identifier."""
        return str(uuid4())

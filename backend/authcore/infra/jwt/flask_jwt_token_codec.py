# authcore/infra/jwt/flask_jwt_token_codec.py
from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, cast
from uuid import uuid4

import jwt
from flask import Flask, has_app_context
from flask_jwt_extended import create_access_token, create_refresh_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException

from authcore.services._shared.clock import from_timestamp
from authcore.services._shared.errors import (
    InvalidTokenError,
    TokenExpiredError,
    TokenGenerationError,
    TokenValidationError,
)
from authcore.services._shared.ports import TokenCodec
from authcore.services.auth.dto import JwtPayload, TokenType

# Claims owned by the codec; custom claims may not override them.
RESERVED_CLAIMS = frozenset(
    {"iss", "aud", "iat", "nbf", "exp", "jti", "type", "sub", "fresh", "device_id"}
)

# Exceptions the signing stack raises on bad keys or settings.
_SIGNING_ERRORS = (
    jwt.PyJWTError,
    JWTExtendedException,
    ValueError,
    TypeError,
    NotImplementedError,
    RuntimeError,
)


@dataclass(slots=True)
class FlaskJWTTokenCodec(TokenCodec):
    """
    Adapter for Flask-JWT-Extended.

    Issuer, audience, algorithm and the key pair come from ``app.config``
    (see :meth:`TokenPolicy.jwt_settings` and :mod:`authcore.core.keys`).

    .. note::
       Requires an active Flask app context with proper JWT settings. When
       ``app`` is given the codec pushes its own context if none is active,
       which lets worker threads and CLI commands use it directly.
    """

    app: Flask | None = None

    def _context(self) -> AbstractContextManager[Any]:
        if self.app is not None and not has_app_context():
            return self.app.app_context()
        return nullcontext()

    # -------------------------- Encoding ---------------------------

    def new_jti(self) -> str:
        return str(uuid4())

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
        if ttl <= timedelta(0):
            raise TokenGenerationError("Token TTL must be positive")
        clashing = RESERVED_CLAIMS.intersection(custom_claims or {})
        if clashing:
            raise TokenGenerationError(f"Custom claims override reserved claims: {sorted(clashing)}")

        # Flask-JWT-Extended applies additional claims last, so the jti we pass
        # is the one embedded in the token.
        claims: dict[str, Any] = dict(custom_claims or {})
        claims["jti"] = jti or self.new_jti()
        if device_id is not None:
            claims["device_id"] = device_id

        create = create_refresh_token if token_type is TokenType.REFRESH else create_access_token
        try:
            with self._context():
                return cast(
                    str,
                    create(
                        identity=str(user_id),
                        additional_claims=claims,
                        expires_delta=ttl,
                    ),
                )
        except _SIGNING_ERRORS as exc:
            raise TokenGenerationError(f"Unable to sign {token_type.value} token: {exc}") from exc

    # -------------------------- Decoding ---------------------------

    def verify_token(
        self,
        token: str,
        expected_type: TokenType | None = None,
        *,
        allow_expired: bool = False,
    ) -> JwtPayload:
        self._check_structure(token)
        try:
            with self._context():
                claims = cast(dict[str, Any], decode_token(token, allow_expired=allow_expired))
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except (jwt.InvalidIssuerError, jwt.InvalidAudienceError) as exc:
            raise TokenValidationError() from exc
        except jwt.MissingRequiredClaimError as exc:
            if exc.claim in ("iss", "aud"):
                raise TokenValidationError(f"Missing {exc.claim} claim") from exc
            raise InvalidTokenError(f"Missing {exc.claim} claim") from exc
        except (jwt.InvalidTokenError, JWTExtendedException) as exc:
            raise InvalidTokenError(f"Invalid token: {exc}") from exc

        payload = self._to_payload(claims)
        if expected_type is not None and payload.type is not expected_type:
            raise InvalidTokenError(
                f"Expected {expected_type.value} token, got {payload.type.value} token"
            )
        return payload

    def parse_unsafe(self, token: str) -> JwtPayload:
        self._check_structure(token)
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError(f"Invalid token: {exc}") from exc
        return self._to_payload(claims)

    # -------------------------- Helpers ----------------------------

    @staticmethod
    def _check_structure(token: str) -> None:
        """Three dot-separated base64url segments with a JSON header."""
        if not isinstance(token, str) or token.count(".") != 2 or not all(token.split(".")):
            raise InvalidTokenError("Malformed token")
        try:
            jwt.get_unverified_header(token)
        except jwt.DecodeError as exc:
            raise InvalidTokenError("Malformed token") from exc

    @staticmethod
    def _to_payload(claims: Mapping[str, Any]) -> JwtPayload:
        try:
            subject = str(claims["sub"])
            if not subject.isdigit():
                raise InvalidTokenError("Invalid token subject")
            audience = claims.get("aud", "")
            if isinstance(audience, list | tuple):
                audience = audience[0] if audience else ""
            jti = claims["jti"]
            if not jti:
                raise InvalidTokenError("Missing jti claim")
            return JwtPayload(
                subject_user_id=int(subject),
                jti=str(jti),
                type=TokenType(claims.get("type", TokenType.ACCESS.value)),
                issued_at=from_timestamp(claims["iat"]),
                expires_at=from_timestamp(claims["exp"]),
                issuer=str(claims.get("iss", "")),
                audience=str(audience),
                device_id=claims.get("device_id"),
                custom_claims={k: v for k, v in claims.items() if k not in RESERVED_CLAIMS},
            )
        except KeyError as exc:
            raise InvalidTokenError(f"Missing {exc.args[0]} claim") from exc
        except (TypeError, ValueError) as exc:
            raise InvalidTokenError(f"Invalid claim value: {exc}") from exc

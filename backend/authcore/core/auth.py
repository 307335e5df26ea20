"""Token policy bootstrap and authentication service wiring."""

from __future__ import annotations

from typing import cast

from flask import Flask, current_app

from authcore.core.extensions import get_redis
from authcore.core.keys import load_key_pair
from authcore.infra.jwt.flask_jwt_token_codec import FlaskJWTTokenCodec
from authcore.infra.redis.redis_revocation_cache import RedisRevocationCache
from authcore.infra.sql.sql_credential_verifier import SQLCredentialVerifier
from authcore.infra.sql.sql_refresh_token_store import SQLRefreshTokenStore
from authcore.infra.sql.sql_revocation_list import SQLRevocationList
from authcore.services._shared.ports import (
    CachedRevocationList,
    InMemoryRevocationCache,
    RevocationCache,
)
from authcore.services.auth.policy import TokenPolicy
from authcore.services.auth.service import AuthenticationService

EXTENSION_KEY = "auth_service"


def configure_tokens(app: Flask) -> TokenPolicy:
    """
    Validate the token policy and load key material into ``app.config``.

    Must run before the JWT extension is initialised; a bad policy or missing
    keys abort startup with :class:`PolicyConfigurationError`.
    """
    policy = TokenPolicy.from_config(app.config)
    keys = load_key_pair(app.config, policy.algorithm)
    app.config.update(policy.jwt_settings())
    app.config["JWT_PRIVATE_KEY"] = keys.private_pem
    app.config["JWT_PUBLIC_KEY"] = keys.public_pem
    app.extensions["token_policy"] = policy
    return policy


def init_app(app: Flask) -> AuthenticationService:
    """Build the authentication service from SQL stores and the revocation cache."""
    policy: TokenPolicy = app.extensions.get("token_policy") or configure_tokens(app)

    client = get_redis()
    cache: RevocationCache = (
        RedisRevocationCache(client) if client is not None else InMemoryRevocationCache()
    )
    revocations = CachedRevocationList(
        SQLRevocationList(),
        cache,
        negative_ttl=int(app.config.get("AUTH_REVOCATION_NEGATIVE_TTL", 5)),
    )
    service = AuthenticationService(
        codec=FlaskJWTTokenCodec(app),
        refresh_store=SQLRefreshTokenStore(),
        revocations=revocations,
        credentials=SQLCredentialVerifier(),
        policy=policy,
    )
    app.extensions[EXTENSION_KEY] = service
    return service


def get_auth_service() -> AuthenticationService:
    """Return the service bound to the current app."""
    return cast(AuthenticationService, current_app.extensions[EXTENSION_KEY])

"""
authcore.services._shared.ports
===============================

Collection of *ports* (hexagonal interfaces) that define the contracts
for token management and authentication infrastructure.

These ports decouple the authentication service from concrete implementations
of token signing, revocation, refresh storage and credential checks.

Modules
-------
- :mod:`token_codec`:
    Defines :class:`~.TokenCodec`: abstraction for JWT signing and verification.

- :mod:`revocation_list`:
    Defines :class:`~.RevocationList` and :class:`~.RevocationCache`, the
    denylist of revoked ``jti`` values and its lookaside cache.

- :mod:`refresh_token_store`:
    Defines :class:`~.RefreshTokenStore` and :class:`~.RotationResult`:
    abstractions for refresh-token persistence and atomic rotation.

- :mod:`credential_verifier`:
    Defines :class:`~.UserCredentialVerifier`: login credential checks.

Design Notes
------------
Concrete adapters (SQL, Redis, Flask-JWT-Extended) implement these
interfaces under ``authcore.infra``. In-memory doubles live next to each
port and are used by unit tests.
"""

from __future__ import annotations

from .credential_verifier import InMemoryCredentialVerifier, UserCredentialVerifier
from .refresh_token_store import InMemoryRefreshTokenStore, RefreshTokenStore, RotationResult
from .revocation_list import (
    CachedRevocationList,
    InMemoryRevocationCache,
    InMemoryRevocationList,
    RevocationCache,
    RevocationList,
)
from .token_codec import TokenCodec

__all__ = [
    "TokenCodec",
    "RefreshTokenStore",
    "RotationResult",
    "InMemoryRefreshTokenStore",
    "RevocationList",
    "RevocationCache",
    "InMemoryRevocationList",
    "InMemoryRevocationCache",
    "CachedRevocationList",
    "UserCredentialVerifier",
    "InMemoryCredentialVerifier",
]

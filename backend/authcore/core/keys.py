"""Signing key loading (PEM) and ephemeral key generation."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from authcore.services._shared.errors import PolicyConfigurationError

log = logging.getLogger(__name__)

_EC_CURVES: dict[str, ec.EllipticCurve] = {
    "ES256": ec.SECP256R1(),
    "ES384": ec.SECP384R1(),
    "ES512": ec.SECP521R1(),
}


@dataclass(frozen=True, slots=True)
class KeyPair:
    """PEM-encoded signing (private) and verification (public) keys."""

    private_pem: str
    public_pem: str
    ephemeral: bool = False


def _read(config: Mapping[str, Any], inline_key: str, path_key: str) -> str | None:
    inline = config.get(inline_key)
    if inline:
        # Single-line env values commonly carry escaped newlines.
        return str(inline).replace("\\n", "\n")
    path = config.get(path_key)
    if path:
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise PolicyConfigurationError(f"Cannot read {path_key}={path!r}: {exc}") from exc
    return None


def _public_bytes(key: Any) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _private_bytes(key: Any) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def generate_key_pair(algorithm: str) -> KeyPair:
    """
    Generate a throwaway key pair suitable for ``algorithm``.

    :raises PolicyConfigurationError: For unsupported algorithms.
    """
    if algorithm.startswith(("RS", "PS")):
        private: Any = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    elif algorithm in _EC_CURVES:
        private = ec.generate_private_key(_EC_CURVES[algorithm])
    elif algorithm == "EdDSA":
        private = ed25519.Ed25519PrivateKey.generate()
    else:
        raise PolicyConfigurationError(f"Cannot generate keys for algorithm {algorithm!r}")
    return KeyPair(
        private_pem=_private_bytes(private).decode("ascii"),
        public_pem=_public_bytes(private.public_key()).decode("ascii"),
        ephemeral=True,
    )


def load_key_pair(config: Mapping[str, Any], algorithm: str) -> KeyPair:
    """
    Resolve the signing key pair from configuration.

    Lookup order: ``JWT_PRIVATE_KEY``/``JWT_PUBLIC_KEY`` (inline PEM), then the
    ``*_PATH`` variants. When neither is set and ``AUTH_EPHEMERAL_KEYS`` is
    true a fresh pair is generated (tokens will not survive a restart).

    :raises PolicyConfigurationError: Missing, unreadable or mismatched keys.
    """
    private_pem = _read(config, "JWT_PRIVATE_KEY", "JWT_PRIVATE_KEY_PATH")
    public_pem = _read(config, "JWT_PUBLIC_KEY", "JWT_PUBLIC_KEY_PATH")

    if not private_pem and not public_pem:
        if not config.get("AUTH_EPHEMERAL_KEYS"):
            raise PolicyConfigurationError(
                "JWT signing keys are not configured (set JWT_PRIVATE_KEY/JWT_PUBLIC_KEY "
                "or their *_PATH variants)."
            )
        log.warning("Using ephemeral JWT signing keys", extra={"event": "ephemeral_keys"})
        return generate_key_pair(algorithm)

    if not private_pem or not public_pem:
        raise PolicyConfigurationError("Both a private and a public JWT key are required.")

    try:
        private = serialization.load_pem_private_key(private_pem.encode("utf-8"), password=None)
        public = serialization.load_pem_public_key(public_pem.encode("utf-8"))
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise PolicyConfigurationError(f"Invalid PEM key material: {exc}") from exc

    if _public_bytes(private.public_key()) != _public_bytes(public):
        raise PolicyConfigurationError("JWT public key does not match the private key.")
    return KeyPair(private_pem=private_pem, public_pem=public_pem)

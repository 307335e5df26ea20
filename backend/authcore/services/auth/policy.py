"""Immutable token issuance policy validated at startup."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from authcore.services._shared.errors import PolicyConfigurationError

DEFAULT_ACCESS_TTL_SECONDS = 3600
DEFAULT_REFRESH_TTL_SECONDS = 2_592_000

ASYMMETRIC_ALGORITHMS = frozenset(
    {
        "RS256",
        "RS384",
        "RS512",
        "PS256",
        "PS384",
        "PS512",
        "ES256",
        "ES384",
        "ES512",
        "EdDSA",
    }
)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True, slots=True)
class TokenPolicy:
    """
    Token emission configuration.

    :param issuer: Value of the ``iss`` claim (verified on decode).
    :param audience: Value of the ``aud`` claim (verified on decode).
    :param algorithm: Asymmetric JWS algorithm name.
    :param access_ttl: Access token lifetime.
    :param refresh_ttl: Refresh token lifetime; must exceed ``access_ttl``.
    :param enforce_device_affinity: Reject refreshes from a different device id.
    :param max_sessions_per_user: Active refresh records kept per user
        (oldest revoked on login); ``None`` disables the limit.
    :raises PolicyConfigurationError: On inconsistent values.
    """

    issuer: str
    audience: str
    algorithm: str = "RS256"
    access_ttl: timedelta = timedelta(seconds=DEFAULT_ACCESS_TTL_SECONDS)
    refresh_ttl: timedelta = timedelta(seconds=DEFAULT_REFRESH_TTL_SECONDS)
    enforce_device_affinity: bool = False
    max_sessions_per_user: int | None = 10

    def __post_init__(self) -> None:
        if not self.issuer or not self.issuer.strip():
            raise PolicyConfigurationError("Token issuer must be a non-empty string.")
        if not self.audience or not self.audience.strip():
            raise PolicyConfigurationError("Token audience must be a non-empty string.")
        if self.algorithm not in ASYMMETRIC_ALGORITHMS:
            raise PolicyConfigurationError(
                f"Algorithm {self.algorithm!r} is not an asymmetric JWS algorithm."
            )
        if self.access_ttl <= timedelta(0):
            raise PolicyConfigurationError("Access token TTL must be positive.")
        if self.refresh_ttl <= self.access_ttl:
            raise PolicyConfigurationError(
                "Refresh token TTL must be greater than access token TTL "
                f"({int(self.refresh_ttl.total_seconds())}s <= "
                f"{int(self.access_ttl.total_seconds())}s)."
            )
        if self.max_sessions_per_user is not None and self.max_sessions_per_user < 1:
            raise PolicyConfigurationError("max_sessions_per_user must be >= 1 or None.")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> TokenPolicy:
        """
        Build the policy from a Flask config mapping (``AUTH_*`` keys).

        :param config: Mapping such as ``app.config``.
        :returns: Validated policy.
        """
        try:
            access = int(config.get("AUTH_ACCESS_TTL_SECONDS", DEFAULT_ACCESS_TTL_SECONDS))
            refresh = int(config.get("AUTH_REFRESH_TTL_SECONDS", DEFAULT_REFRESH_TTL_SECONDS))
            raw_max = config.get("AUTH_MAX_SESSIONS_PER_USER", 10)
            max_sessions = int(raw_max) if raw_max not in (None, "", 0, "0") else None
        except (TypeError, ValueError) as exc:
            raise PolicyConfigurationError(f"Invalid numeric auth setting: {exc}") from exc

        return cls(
            issuer=str(config.get("AUTH_ISSUER", "")),
            audience=str(config.get("AUTH_AUDIENCE", "")),
            algorithm=str(config.get("AUTH_JWT_ALGORITHM", "RS256")),
            access_ttl=timedelta(seconds=access),
            refresh_ttl=timedelta(seconds=refresh),
            enforce_device_affinity=_as_bool(config.get("AUTH_ENFORCE_DEVICE_AFFINITY", False)),
            max_sessions_per_user=max_sessions,
        )

    def ttl_for(self, token_type: str) -> timedelta:
        return self.refresh_ttl if token_type == "refresh" else self.access_ttl

    def jwt_settings(self) -> dict[str, Any]:
        """
        Flask-JWT-Extended settings derived from this policy.

        The policy is the single source of truth; these keys are written into
        ``app.config`` at startup.
        """
        return {
            "JWT_ALGORITHM": self.algorithm,
            "JWT_DECODE_ALGORITHMS": [self.algorithm],
            "JWT_ENCODE_ISSUER": self.issuer,
            "JWT_DECODE_ISSUER": self.issuer,
            "JWT_ENCODE_AUDIENCE": self.audience,
            "JWT_DECODE_AUDIENCE": self.audience,
            "JWT_ACCESS_TOKEN_EXPIRES": self.access_ttl,
            "JWT_REFRESH_TOKEN_EXPIRES": self.refresh_ttl,
            "JWT_ENCODE_NBF": True,
            "JWT_DECODE_LEEWAY": 0,
        }

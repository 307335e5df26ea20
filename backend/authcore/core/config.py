"""Application settings with environment-based simple classes."""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from typing import Any, Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'


# Load .env in development (no-op when the file does not exist)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer environment variable, falling back to ``default``."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val)


def store_engine_options(database_uri: str, timeout: float | None) -> dict[str, Any]:
    """Build ``SQLALCHEMY_ENGINE_OPTIONS`` bounding store I/O by ``timeout``.

    Parameters
    ----------
    database_uri: str
        SQLAlchemy URL; the driver family selects the timeout knobs.
    timeout: float | None
        Seconds a single connection checkout or statement may take. ``None``
        or ``0`` leaves the driver defaults untouched.

    Returns
    -------
    dict
        Keyword arguments for :func:`sqlalchemy.create_engine`.

    Notes
    -----
    - SQLite only gets a lock ``timeout``; its pools take no checkout timeout.
    - PostgreSQL also gets ``connect_timeout`` and a server ``statement_timeout``.
    """
    if not timeout or timeout <= 0:
        return {}
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout}}

    options: dict[str, Any] = {"pool_pre_ping": True, "pool_timeout": timeout}
    if database_uri.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(1, math.ceil(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return options


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    APP_VERSION: str
        Version string reported by the health endpoint.
    AUTH_JWT_ALGORITHM: str
        Asymmetric JWS algorithm (``RS256`` by default).
    AUTH_ISSUER / AUTH_AUDIENCE: str
        Values written to and required from the ``iss``/``aud`` claims.
    AUTH_ACCESS_TTL_SECONDS / AUTH_REFRESH_TTL_SECONDS: int
        Token lifetimes; the refresh TTL must exceed the access TTL.
    AUTH_ENFORCE_DEVICE_AFFINITY: bool
        Reject refreshes presented from a device other than the bound one.
    AUTH_MAX_SESSIONS_PER_USER: int
        Active refresh records kept per user; ``0`` disables the limit.
    AUTH_REVOCATION_NEGATIVE_TTL: int
        Seconds a "not revoked" answer may be served from cache.
    AUTH_REQUEST_DEADLINE_SECONDS: float
        Time budget for one API call across store round-trips; ``0`` disables it.
    JWT_PRIVATE_KEY / JWT_PUBLIC_KEY: str | None
        Inline PEM key pair (or use the ``*_PATH`` variants).
    AUTH_EPHEMERAL_KEYS: bool
        Generate a throwaway key pair when none is configured (never in
        production).
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    REDIS_URL: str | None
        Optional Redis used as the shared revocation cache.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    API_BASE_PREFIX = "/api"
    APP_VERSION = os.getenv("APP_VERSION", "0.1.0")

    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")

    # Token policy
    AUTH_JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "RS256")
    AUTH_ISSUER = os.getenv("AUTH_ISSUER", "authcore")
    AUTH_AUDIENCE = os.getenv("AUTH_AUDIENCE", "authcore-clients")
    AUTH_ACCESS_TTL_SECONDS = env_int("AUTH_ACCESS_TTL_SECONDS", 3600)
    AUTH_REFRESH_TTL_SECONDS = env_int("AUTH_REFRESH_TTL_SECONDS", 2_592_000)
    AUTH_ENFORCE_DEVICE_AFFINITY = env_bool("AUTH_ENFORCE_DEVICE_AFFINITY", False)
    AUTH_MAX_SESSIONS_PER_USER = env_int("AUTH_MAX_SESSIONS_PER_USER", 10)
    AUTH_REVOCATION_NEGATIVE_TTL = env_int("AUTH_REVOCATION_NEGATIVE_TTL", 5)
    AUTH_REQUEST_DEADLINE_SECONDS = float(os.getenv("AUTH_REQUEST_DEADLINE_SECONDS", "5"))

    # Key material
    JWT_PRIVATE_KEY = os.getenv("JWT_PRIVATE_KEY")
    JWT_PUBLIC_KEY = os.getenv("JWT_PUBLIC_KEY")
    JWT_PRIVATE_KEY_PATH = os.getenv("JWT_PRIVATE_KEY_PATH")
    JWT_PUBLIC_KEY_PATH = os.getenv("JWT_PUBLIC_KEY_PATH")
    AUTH_EPHEMERAL_KEYS = env_bool("AUTH_EPHEMERAL_KEYS", False)

    # Header-only token transport for the HTTP glue
    JWT_TOKEN_LOCATION = ["headers"]

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Cache
    REDIS_URL = os.getenv("REDIS_URL")

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Enables debug mode and ephemeral signing keys by default.
    """

    DEBUG = env_bool("FLASK_DEBUG", True)
    AUTH_EPHEMERAL_KEYS = env_bool("AUTH_EPHEMERAL_KEYS", True)


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and ephemeral keys.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Never talks to Redis unless a test wires one explicitly.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    AUTH_EPHEMERAL_KEYS = True
    REDIS_URL = None
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    Ephemeral keys are refused; a PEM key pair must be configured.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False
    AUTH_EPHEMERAL_KEYS = False
    PROPAGATE_EXCEPTIONS = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)

"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    LoginSchema,
    LogoutSchema,
    RefreshSchema,
    SessionSchema,
    TokenPairSchema,
    WhoAmISchema,
)

__all__ = [
    "LoginSchema",
    "LogoutSchema",
    "RefreshSchema",
    "SessionSchema",
    "TokenPairSchema",
    "WhoAmISchema",
]

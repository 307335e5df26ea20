"""Identity used by the in-memory credential verifier fixture."""

from __future__ import annotations

USER_ID = 42
USER_EMAIL = "alice@example.com"
USER_PASSWORD = "Passw0rd!"

from authcore.repositories.refresh_token import RefreshTokenRepository
from authcore.repositories.revoked_token import RevokedTokenRepository
from authcore.repositories.user import UserRepository

__all__ = [
    "RefreshTokenRepository",
    "RevokedTokenRepository",
    "UserRepository",
]

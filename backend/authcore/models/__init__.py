from authcore.models.refresh_token import RefreshToken
from authcore.models.revoked_token import RevokedToken
from authcore.models.user import User

__all__ = [
    "RefreshToken",
    "RevokedToken",
    "User",
]

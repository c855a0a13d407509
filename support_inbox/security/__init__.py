"""Security utilities exposed for convenience."""

from .auth import get_current_token_payload, get_current_user, require_permission
from .passwords import hash_password, verify_password
from .permissions import Permissions
from .tokens import (
    JWTSettings,
    create_access_token,
    decode_access_token,
    get_jwt_settings,
    reset_jwt_settings_cache,
)

__all__ = [
    "JWTSettings",
    "Permissions",
    "create_access_token",
    "decode_access_token",
    "get_current_token_payload",
    "get_current_user",
    "get_jwt_settings",
    "hash_password",
    "require_permission",
    "reset_jwt_settings_cache",
    "verify_password",
]

from .auth import (
    create_access_token,
    get_token_from_cookie,
    get_optional_user,
    get_current_active_user,
    Permission,
    check_permission,
    check_role,
    require_admin,
    auth_middleware,
    ACCESS_TOKEN_EXPIRE_MINUTES,
)

__all__ = [
    "create_access_token",
    "get_token_from_cookie",
    "get_optional_user",
    "get_current_active_user",
    "Permission",
    "check_permission",
    "check_role",
    "require_admin",
    "auth_middleware",
    "ACCESS_TOKEN_EXPIRE_MINUTES",
]

import logging
import os
import re
import secrets
from datetime import datetime, timedelta, UTC
from enum import Enum
from typing import Dict, Optional, Set

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ideaportal.config.loader import get_access_token_expire_minutes
from ideaportal.data.user_manager import UserManager
from ideaportal.database import get_db
from ideaportal.models.user import User as UserModel, UserRole
from ideaportal.schemas.user import User as UserSchema

logger = logging.getLogger("ideaportal.auth")


# --- Configuration ---
def generate_dev_key() -> str:
    """Generate a throwaway signing key for development environments ONLY."""
    key = secrets.token_urlsafe(48)
    logger.warning(
        "\n"
        + "*" * 80
        + "\n"
        + "DEVELOPMENT MODE: Using generated secret key.\n"
        + "Sessions will not survive a restart and this is NOT secure for production use!\n"
        + "Set IDEAPORTAL_JWT_SECRET_KEY in your environment variables for production.\n"
        + "*" * 80
    )
    return key


def validate_secret_key(key: str) -> bool:
    """Validate that a JWT secret key meets minimum security requirements."""
    if not key:
        return False
    if len(key) < 32:
        logger.error("JWT secret key must be at least 32 characters long for security.")
        return False
    return True


def _is_production_mode() -> bool:
    env = os.getenv("IDEAPORTAL_ENV", "development").strip().lower()
    return env in {"production", "prod"}


SECRET_KEY = os.getenv("IDEAPORTAL_JWT_SECRET_KEY")
ALGORITHM = "HS256"
JWT_ISSUER = os.getenv("IDEAPORTAL_JWT_ISSUER", "ideaportal")
ACCESS_TOKEN_EXPIRE_MINUTES = get_access_token_expire_minutes()
COOKIE_NAME = "access_token"

if not SECRET_KEY:
    if _is_production_mode():
        raise RuntimeError(
            "Missing IDEAPORTAL_JWT_SECRET_KEY while IDEAPORTAL_ENV is set to production. "
            + "Configure a strong static secret before startup."
        )
    SECRET_KEY = generate_dev_key()
elif not validate_secret_key(SECRET_KEY):
    raise RuntimeError(
        "Invalid JWT secret key configuration. "
        + "The key must be at least 32 characters long. "
        + "Update IDEAPORTAL_JWT_SECRET_KEY in your environment variables."
    )
else:
    logger.info("JWT secret key validated and loaded from environment.")

if ACCESS_TOKEN_EXPIRE_MINUTES > 7 * 24 * 60:
    logger.warning(
        f"Long token expiration time configured: {ACCESS_TOKEN_EXPIRE_MINUTES} minutes. "
        + "Consider reducing this value for better security."
    )


# --- Token Utilities ---


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Creates a new JWT access token.
    The 'sub' claim carries the username (email) of the account.
    """
    to_encode = data.copy()
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "iat": now, "iss": JWT_ISSUER})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    logger.info(f"Created access token for subject: {data.get('sub')}")
    return encoded_jwt


def get_token_from_cookie(request: Request) -> Optional[str]:
    """
    Extracts the JWT from the 'access_token' HTTPOnly cookie.
    Handles the optional 'Bearer ' prefix.
    """
    token_with_prefix = request.cookies.get(COOKIE_NAME)
    if not token_with_prefix:
        return None
    token_with_prefix = token_with_prefix.strip('"')
    if token_with_prefix.startswith("Bearer "):
        return token_with_prefix.split(" ", 1)[1]
    return token_with_prefix


def decode_token_subject(token: Optional[str]) -> Optional[str]:
    """Return the username in a valid token, or None for missing/invalid/expired tokens."""
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            issuer=JWT_ISSUER,
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.info(f"Rejected session token: {str(e)}")
        return None
    subject = payload.get("sub")
    if not subject:
        logger.warning("Token payload missing 'sub' claim.")
        return None
    return subject


def _load_user(db: Session, username: str) -> Optional[UserModel]:
    user_crud = UserManager()
    user_crud.set_db(db)
    return user_crud.get_user_by_username(username)


# --- User Retrieval Dependencies ---


async def get_optional_user(
    request: Request, db: Session = Depends(get_db)
) -> Optional[UserSchema]:
    """
    The signed-in user, or None for anonymous callers.
    Reuses the user the middleware already resolved when present.
    """
    cached_user = getattr(request.state, "user", None)
    if cached_user is not None:
        return cached_user

    username = decode_token_subject(get_token_from_cookie(request))
    if not username:
        return None
    user = _load_user(db, username)
    if not user:
        logger.warning(f"Token valid but user '{username}' no longer exists.")
        return None
    safe_user = UserSchema.model_validate(user)
    request.state.user = safe_user
    return safe_user


async def get_current_active_user(
    current_user: Optional[UserSchema] = Depends(get_optional_user),
) -> UserSchema:
    """
    FastAPI dependency returning the authenticated user as a detached
    pydantic model; raises 401 for anonymous callers.
    """
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user


# --- Role and Permission Dependencies ---


class Permission(str, Enum):
    SUBMIT_IDEA = "submit_idea"
    VOTE = "vote"
    COMMENT = "comment"
    REVIEW_IDEAS = "review_ideas"
    EDIT_ANY_IDEA = "edit_any_idea"
    CHANGE_STATUS = "change_status"
    ASSIGN_ROLES = "assign_roles"
    DELETE_IDEA = "delete_idea"
    MANAGE_USERS = "manage_users"


# Each role extends the one before it:
# - Users submit, vote and comment.
# - Reviewers/transformers/implementers also work the review queue and edit any submission.
# - Admins also move statuses, assign roles, delete ideas and manage accounts.
USER_PERMISSIONS: Set[Permission] = {
    Permission.SUBMIT_IDEA,
    Permission.VOTE,
    Permission.COMMENT,
}
STAFF_PERMISSIONS: Set[Permission] = USER_PERMISSIONS | {
    Permission.REVIEW_IDEAS,
    Permission.EDIT_ANY_IDEA,
}
ADMIN_PERMISSIONS: Set[Permission] = STAFF_PERMISSIONS | {
    Permission.CHANGE_STATUS,
    Permission.ASSIGN_ROLES,
    Permission.DELETE_IDEA,
    Permission.MANAGE_USERS,
}

ROLE_PERMISSIONS: Dict[UserRole, Set[Permission]] = {
    UserRole.ADMIN: ADMIN_PERMISSIONS,
    UserRole.REVIEWER: STAFF_PERMISSIONS,
    UserRole.TRANSFORMER: STAFF_PERMISSIONS,
    UserRole.IMPLEMENTER: STAFF_PERMISSIONS,
    UserRole.USER: USER_PERMISSIONS,
}


def has_permission(user_role: UserRole, required_permission: Permission) -> bool:
    """Checks if a user role has a specific permission."""
    return required_permission in ROLE_PERMISSIONS.get(user_role, set())


def check_permission(required_permission: Permission):
    """
    FastAPI dependency factory: resolves to the current user when their role
    grants `required_permission`, otherwise raises 403.
    """

    async def _check_permission_dependency(
        current_user: UserSchema = Depends(get_current_active_user),
    ) -> UserSchema:
        if not has_permission(current_user.role, required_permission):
            logger.warning(
                f"Access denied: Role '{current_user.role.value}' lacks '{required_permission.value}' "
                f"(user {current_user.id})."
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"You do not have permission to '{required_permission.value}'.",
            )
        return current_user

    return _check_permission_dependency


def check_role(*allowed_roles: UserRole):
    """FastAPI dependency factory allowing only the listed roles through."""
    allowed = set(allowed_roles)

    async def _check_role_dependency(
        current_user: UserSchema = Depends(get_current_active_user),
    ) -> UserSchema:
        if current_user.role not in allowed:
            logger.warning(
                f"Access denied: Role '{current_user.role.value}' not in "
                f"{sorted(role.value for role in allowed)} (user {current_user.id})."
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Your role does not allow this action.",
            )
        return current_user

    return _check_role_dependency


require_admin = check_role(UserRole.ADMIN)


# --- Authentication Middleware ---

# Readable without a session; every other /api route needs one.
PUBLIC_API_ROUTES = [
    ("POST", re.compile(r"^/api/(register|login|logout)$")),
    ("GET", re.compile(r"^/api/ideas$")),
    ("GET", re.compile(r"^/api/ideas/\d+$")),
    ("GET", re.compile(r"^/api/ideas/\d+/(comments|participants)$")),
    (
        "GET",
        re.compile(
            r"^/api/ideas/(top|recent-activity|volume|by-status|opportunity|challenge|pain-point)$"
        ),
    ),
    ("GET", re.compile(r"^/api/(leaderboard|metrics)$")),
    ("GET", re.compile(r"^/api/search(/suggestions)?$")),
    ("GET", re.compile(r"^/api/chart/[a-z-]+$")),
]


def is_public_path(method: str, path: str) -> bool:
    if not path.startswith("/api/"):
        # health check, docs, uploads
        return True
    method = "GET" if method == "HEAD" else method
    return any(
        method == allowed_method and pattern.match(path)
        for allowed_method, pattern in PUBLIC_API_ROUTES
    )


async def auth_middleware(request: Request, call_next):
    """
    Resolves the session cookie into request.state.user and returns 401 for
    anonymous calls to protected /api routes.
    """
    path = request.url.path
    method = request.method.upper()
    token = get_token_from_cookie(request)
    username = decode_token_subject(token)

    if username:
        # Tests override get_db; the middleware must see the same session.
        override = request.app.dependency_overrides.get(get_db)
        if override is not None:
            db = override()
            user = _load_user(db, username)
        else:
            db_gen = get_db()
            db = next(db_gen)
            try:
                user = _load_user(db, username)
            finally:
                db_gen.close()
        if user:
            request.state.user = UserSchema.model_validate(user)
        else:
            logger.warning(f"Auth Middleware: token for unknown user '{username}' on {path}")

    if getattr(request.state, "user", None) is None and not is_public_path(method, path):
        logger.info(f"Auth Middleware: Returning 401 for anonymous {method} {path}")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Not authenticated to access this API endpoint."},
            headers={"WWW-Authenticate": "Bearer"},
        )

    return await call_next(request)


__all__ = [
    "create_access_token",
    "get_token_from_cookie",
    "decode_token_subject",
    "get_optional_user",
    "get_current_active_user",
    "Permission",
    "ROLE_PERMISSIONS",
    "has_permission",
    "check_permission",
    "check_role",
    "require_admin",
    "auth_middleware",
    "is_public_path",
    "ACCESS_TOKEN_EXPIRE_MINUTES",
    "COOKIE_NAME",
]

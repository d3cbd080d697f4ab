import logging
from datetime import timedelta
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ideaportal.auth.auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    COOKIE_NAME,
    create_access_token,
    get_current_active_user,
)
from ideaportal.config.loader import get_secure_cookies_enabled
from ideaportal.data.user_manager import UserManager, get_user_manager
from ideaportal.models.user import UserRole
from ideaportal.schemas.user import (
    LoginRequest,
    PasswordChange,
    User,
    UserCreate,
    UserProfileUpdate,
    UserResponse,
)
from ideaportal.utils.password_validation import validate_password
from ideaportal.utils.security import get_password_hash, verify_password

logger = logging.getLogger("ideaportal.auth")

router = APIRouter(prefix="/api", tags=["authentication"])


def _set_session_cookie(response: Response, username: str) -> None:
    access_token = create_access_token(
        data={"sub": username},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    response.set_cookie(
        key=COOKIE_NAME,
        value=f"Bearer {access_token}",
        httponly=True,
        secure=get_secure_cookies_enabled(),
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        expires=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
        path="/",
    )


@router.post(
    "/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED
)
async def register_user(
    response: Response,
    user: UserCreate,
    user_manager: UserManager = Depends(get_user_manager),
):
    """
    Create an account with the `user` role and sign it in.
    Admin accounts come from the bootstrap settings or scripts/create_admin.py.
    """
    is_valid, error_message = validate_password(user.password)
    if not is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=error_message
        )

    try:
        created = user_manager.add_user(
            username=user.username,
            hashed_password=get_password_hash(user.password),
            display_name=user.display_name,
            department=user.department,
            role=UserRole.USER.value,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    _set_session_cookie(response, created.username)
    logger.info(f"Registered user {created.id} ({created.username})")
    return created


@router.post("/login", response_model=UserResponse)
async def login(
    response: Response,
    credentials: LoginRequest,
    user_manager: UserManager = Depends(get_user_manager),
):
    """Check credentials and set the HTTPOnly session cookie."""
    user = user_manager.verify_user_credentials(
        credentials.username, credentials.password
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    _set_session_cookie(response, user.username)
    logger.info(f"User {user.id} logged in")
    return user


@router.post("/logout")
async def logout(response: Response) -> Dict[str, str]:
    """Logs the user out by clearing the access token cookie."""
    response.delete_cookie(
        key=COOKIE_NAME,
        path="/",
        httponly=True,
        secure=get_secure_cookies_enabled(),
        samesite="lax",
    )
    return {"message": "Logout successful"}


@router.get("/user", response_model=UserResponse)
async def read_current_user(
    current_user: User = Depends(get_current_active_user),
    user_manager: UserManager = Depends(get_user_manager),
):
    user = user_manager.get_user_by_id(current_user.id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.patch("/user/{user_id}", response_model=UserResponse)
async def update_profile(
    user_id: int,
    updates: UserProfileUpdate,
    current_user: User = Depends(get_current_active_user),
    user_manager: UserManager = Depends(get_user_manager),
):
    if current_user.id != user_id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update your own profile",
        )
    user = user_manager.update_profile(user_id, updates.model_dump(exclude_unset=True))
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("/user/{user_id}/change-password")
async def change_password(
    user_id: int,
    password_change: PasswordChange,
    current_user: User = Depends(get_current_active_user),
    user_manager: UserManager = Depends(get_user_manager),
) -> Dict[str, str]:
    if current_user.id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only change your own password",
        )
    user = user_manager.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not verify_password(password_change.current_password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    is_valid, error_message = validate_password(password_change.new_password)
    if not is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=error_message
        )
    user_manager.change_password(user_id, password_change.new_password)
    return {"message": "Password updated successfully"}

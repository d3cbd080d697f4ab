import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from ideaportal.auth.auth import require_admin
from ideaportal.data.ideas_manager import ADMIN_FIELDS, IdeasManager, get_ideas_manager
from ideaportal.data.notification_manager import NotificationManager
from ideaportal.data.user_manager import UserManager, get_user_manager
from ideaportal.database import get_db
from ideaportal.models.idea import IdeaStatus
from ideaportal.models.user import UserRole
from ideaportal.routers.ideas import (
    apply_status_change,
    idea_filters,
    parse_category,
    require_idea,
    run_listing,
)
from ideaportal.schemas.idea import (
    AdminIdeaUpdate,
    AssigneeRequest,
    IdeaResponse,
    StatusChangeRequest,
)
from ideaportal.schemas.user import AdminUserUpdate, User, UserResponse

logger = logging.getLogger("ideaportal.admin")

# The router-level dependency rejects non-admins before any handler runs.
router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("/ideas", response_model=List[IdeaResponse])
async def list_all_ideas(
    filters: Dict[str, Any] = Depends(idea_filters),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    return run_listing(db, ideas_manager, filters)


@router.get("/ideas/category/{category}", response_model=List[IdeaResponse])
async def list_ideas_by_category(
    category: str,
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    return ideas_manager.list_ideas(db, category=parse_category(category))


@router.get("/ideas/status/{idea_status}", response_model=List[IdeaResponse])
async def list_ideas_by_status(
    idea_status: IdeaStatus,
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    return ideas_manager.list_ideas(db, status=idea_status)


@router.patch("/ideas/{idea_id}/status", response_model=IdeaResponse)
async def update_idea_status(
    idea_id: int,
    change: StatusChangeRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    return apply_status_change(db, ideas_manager, idea_id, change.status, current_user.id)


@router.patch("/ideas/{idea_id}/assign", response_model=IdeaResponse)
async def assign_idea(
    idea_id: int,
    assignee: AssigneeRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    """Set (or clear, with user_id null) the general assignee of an idea."""
    try:
        idea = ideas_manager.set_assignee(db, idea_id, assignee.user_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if idea is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Idea not found")
    if assignee.user_id is not None:
        NotificationManager(db).notify_assignee(idea, assignee.user_id, current_user.id)
    return idea


@router.patch("/ideas/{idea_id}", response_model=IdeaResponse)
async def update_idea_admin_fields(
    idea_id: int,
    updates: AdminIdeaUpdate,
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    require_idea(db, ideas_manager, idea_id)
    return ideas_manager.update_idea(
        db, idea_id, updates.model_dump(exclude_unset=True), ADMIN_FIELDS
    )


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    role: Optional[UserRole] = None,
    user_manager: UserManager = Depends(get_user_manager),
):
    return user_manager.get_users(role)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    updates: AdminUserUpdate,
    user_manager: UserManager = Depends(get_user_manager),
):
    user = user_manager.update_role_and_department(
        user_id, role=updates.role, department=updates.department
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    user_manager: UserManager = Depends(get_user_manager),
):
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account",
        )
    if not user_manager.delete_user(user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    logger.info(f"Admin {current_user.id} deleted user {user_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

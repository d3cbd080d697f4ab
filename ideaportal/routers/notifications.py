from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ideaportal.auth.auth import get_current_active_user
from ideaportal.config.loader import get_notification_settings
from ideaportal.data.notification_manager import NotificationManager
from ideaportal.database import get_db
from ideaportal.schemas.notification import (
    MarkAllResult,
    NotificationResponse,
    UnreadCount,
)
from ideaportal.schemas.user import User

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

_DEFAULT_LIMIT = get_notification_settings()["default_limit"]


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    limit: int = Query(_DEFAULT_LIMIT, ge=1, le=100),
    only_unread: bool = False,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    """Newest first; the client polls this together with the unread count."""
    return NotificationManager(db).get_user_notifications(
        current_user.id, limit=limit, only_unread=only_unread
    )


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return UnreadCount(count=NotificationManager(db).get_unread_count(current_user.id))


@router.post("/mark-all-as-read", response_model=MarkAllResult)
async def mark_all_as_read(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return MarkAllResult(updated=NotificationManager(db).mark_all_as_read(current_user.id))


@router.post("/{notification_id}/mark-as-read", response_model=NotificationResponse)
async def mark_as_read(
    notification_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    notification = NotificationManager(db).mark_as_read(current_user.id, notification_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found"
        )
    return notification

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from ideaportal.auth.auth import (
    Permission,
    check_permission,
    check_role,
    get_current_active_user,
    get_optional_user,
)
from ideaportal.config.loader import get_pagination_settings
from ideaportal.data.challenge_manager import ChallengeManager
from ideaportal.data.comment_manager import CommentManager
from ideaportal.data.follow_manager import FollowManager
from ideaportal.data.ideas_manager import EDITABLE_FIELDS, IdeasManager, get_ideas_manager
from ideaportal.data.notification_manager import NotificationManager
from ideaportal.database import get_db
from ideaportal.models.idea import (
    Idea,
    IdeaCategory,
    IdeaPriority,
    IdeaStatus,
    normalize_category,
)
from ideaportal.models.user import UserRole, is_staff_role
from ideaportal.schemas.comment import CommentCreate, CommentResponse
from ideaportal.schemas.idea import (
    FollowResponse,
    FollowStatus,
    IdeaCreate,
    IdeaDetailResponse,
    IdeaResponse,
    IdeaUpdate,
    ParticipantResponse,
    RoleAssignee,
    RoleAssignmentRequest,
    StatusChangeRequest,
    VoteResult,
)
from ideaportal.schemas.analytics import ChartSlice, VolumePoint
from ideaportal.schemas.user import User
from ideaportal.services.analytics import DEFAULT_VOLUME_DAYS, AnalyticsService
from ideaportal.services.voting_manager import VotingManager
from ideaportal.utils.uploads import UploadTooLargeError, discard_uploads, save_upload

logger = logging.getLogger("ideaportal.ideas")

router = APIRouter(prefix="/api/ideas", tags=["ideas"])

_PAGINATION = get_pagination_settings()
_LIST_FORM_FIELDS = frozenset({"tags", "attachments"})

require_staff = check_role(
    UserRole.REVIEWER, UserRole.TRANSFORMER, UserRole.IMPLEMENTER, UserRole.ADMIN
)


# --- Shared helpers (also used by the admin router) ---


def require_idea(db: Session, ideas_manager: IdeasManager, idea_id: int) -> Idea:
    idea = ideas_manager.get_idea(db, idea_id)
    if not idea:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Idea not found")
    return idea


def parse_category(value: Optional[str]) -> Optional[str]:
    category = normalize_category(value)
    if category in (None, "", "all"):
        return None
    if category not in {c.value for c in IdeaCategory}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported category '{value}'",
        )
    return category


def idea_filters(
    status: Optional[IdeaStatus] = None,
    category: Optional[str] = None,
    department: Optional[str] = None,
    priority: Optional[IdeaPriority] = None,
    submitted_by_id: Optional[int] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
    limit: Optional[int] = Query(None, ge=1, le=_PAGINATION["max_limit"]),
    offset: int = Query(0, ge=0),
) -> Dict[str, Any]:
    """Query parameters shared by every filtered idea listing."""
    return {
        "status": status,
        "category": parse_category(category),
        "department": department or None,
        "priority": priority,
        "submitted_by_id": submitted_by_id,
        "search": search,
        "sort_by": sort_by,
        "sort_direction": sort_direction,
        "limit": limit or _PAGINATION["default_limit"],
        "offset": offset,
    }


def run_listing(
    db: Session, ideas_manager: IdeasManager, filters: Dict[str, Any]
) -> List[Idea]:
    try:
        return ideas_manager.list_ideas(db, **filters)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def apply_status_change(
    db: Session,
    ideas_manager: IdeasManager,
    idea_id: int,
    new_status: IdeaStatus,
    actor_id: int,
) -> Idea:
    result = ideas_manager.change_status(db, idea_id, new_status)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Idea not found")
    idea, previous = result
    if previous != idea.status:
        NotificationManager(db).notify_status_change(idea, previous, actor_id)
    return idea


def _role_info(user, email: Optional[str]) -> Optional[RoleAssignee]:
    if user is not None:
        return RoleAssignee(
            id=user.id,
            display_name=user.display_name,
            email=user.username,
            department=user.department,
            avatar_url=user.avatar_url,
        )
    if email:
        return RoleAssignee(
            id=0, display_name=f"Pending: {email}", email=email, pending=True
        )
    return None


def build_idea_detail(
    db: Session, idea: Idea, current_user: Optional[User]
) -> IdeaDetailResponse:
    detail = IdeaDetailResponse.model_validate(idea)
    detail.comments = [
        CommentResponse.model_validate(comment)
        for comment in CommentManager(db).list_comments(idea.id)
    ]
    if current_user is not None:
        detail.is_followed = FollowManager(db).is_following(current_user.id, idea)
        detail.has_voted = VotingManager(db).has_voted(idea.id, current_user.id)
    detail.participant_count = ChallengeManager(db).count_participants(idea.id)
    detail.reviewer_info = _role_info(idea.reviewer, idea.reviewer_email)
    detail.transformer_info = _role_info(idea.transformer, idea.transformer_email)
    detail.implementer_info = _role_info(idea.implementer, idea.implementer_email)
    return detail


def _validation_messages(exc: ValidationError) -> List[str]:
    return [err["msg"] for err in exc.errors()]


# --- Listings (literal paths must precede /{idea_id}) ---


@router.get("", response_model=List[IdeaResponse])
async def list_ideas(
    all_items: bool = Query(False, alias="all"),
    filters: Dict[str, Any] = Depends(idea_filters),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    """
    Public listing. Anonymous callers only see submitted items unless they
    ask for a status; `all=true` drops the status filter and needs a staff role.
    """
    if all_items:
        if current_user is None or not is_staff_role(current_user.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required"
            )
        filters["status"] = None
    elif filters["status"] is None and current_user is None:
        filters["status"] = IdeaStatus.SUBMITTED
    return run_listing(db, ideas_manager, filters)


@router.get("/top", response_model=List[IdeaResponse])
async def top_ideas(
    limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)
):
    return VotingManager(db).get_top_ideas(limit)


@router.get("/recent-activity", response_model=List[IdeaResponse])
async def recent_activity(db: Session = Depends(get_db)):
    return AnalyticsService(db).recent_activity()


@router.get("/volume", response_model=List[VolumePoint])
async def submission_volume(
    days: int = Query(DEFAULT_VOLUME_DAYS, ge=1), db: Session = Depends(get_db)
):
    return AnalyticsService(db).submission_volume(days)


@router.get("/by-status", response_model=List[ChartSlice])
async def ideas_by_status(db: Session = Depends(get_db)):
    return AnalyticsService(db).status_distribution()


@router.get("/review", response_model=List[IdeaResponse])
async def review_queue(
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    return ideas_manager.get_review_queue(db)


@router.get("/my-votes", response_model=List[IdeaResponse])
async def my_votes(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return VotingManager(db).get_user_voted_ideas(current_user.id)


@router.get("/my-follows", response_model=List[IdeaResponse])
async def my_follows(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return FollowManager(db).get_followed_ideas(current_user.id)


def _category_listing(category: IdeaCategory):
    async def list_category(
        all_items: bool = Query(False, alias="all"),
        current_user: Optional[User] = Depends(get_optional_user),
        db: Session = Depends(get_db),
        ideas_manager: IdeasManager = Depends(get_ideas_manager),
    ):
        # Signed-in users see their own items unless they ask for all of them.
        submitted_by_id = None
        if current_user is not None and not all_items:
            submitted_by_id = current_user.id
        return ideas_manager.list_ideas(
            db, category=category.value, submitted_by_id=submitted_by_id
        )

    list_category.__name__ = f"list_{category.name.lower()}_items"
    return list_category


for _category in IdeaCategory:
    router.add_api_route(
        f"/{_category.value}",
        _category_listing(_category),
        methods=["GET"],
        response_model=List[IdeaResponse],
    )


# --- Single item ---


@router.post("", response_model=IdeaResponse, status_code=status.HTTP_201_CREATED)
async def create_idea(
    request: Request,
    current_user: User = Depends(check_permission(Permission.SUBMIT_IDEA)),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    """
    Submit an idea, challenge or pain point.

    Accepts a JSON body, or multipart/form-data where every file part is
    stored as media on the new item.
    """
    content_type = request.headers.get("content-type", "").lower()
    uploads: List[tuple] = []
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        payload: Any = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if value.filename:
                    uploads.append((key, value))
            else:
                payload[key] = value
        for key in _LIST_FORM_FIELDS.intersection(form.keys()):
            values = [value for value in form.getlist(key) if isinstance(value, str)]
            # A lone tags part may hold comma-separated or JSON text.
            payload[key] = values[0] if key == "tags" and len(values) == 1 else values
    else:
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Request body must be valid JSON",
            )

    try:
        idea_in = IdeaCreate.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_messages(e)
        )

    media_urls = []
    try:
        for field_name, upload in uploads:
            media_urls.append(await save_upload(field_name, upload))
        return ideas_manager.create_idea(
            db, current_user.id, idea_in.model_dump(), media_urls=media_urls
        )
    except UploadTooLargeError as e:
        discard_uploads(media_urls)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        discard_uploads(media_urls)
        raise


@router.get("/{idea_id}", response_model=IdeaDetailResponse)
async def get_idea(
    idea_id: int,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    idea = require_idea(db, ideas_manager, idea_id)
    return build_idea_detail(db, idea, current_user)


@router.patch("/{idea_id}", response_model=IdeaResponse)
async def update_idea(
    idea_id: int,
    updates: IdeaUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    idea = require_idea(db, ideas_manager, idea_id)
    is_staff = is_staff_role(current_user.role)
    if idea.submitted_by_id != current_user.id and not is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the submitter or staff can edit this item",
        )
    changes = updates.model_dump(exclude_unset=True)
    if changes.get("status") is not None and not is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only staff can change the status",
        )

    previous_status = idea.status
    updated = ideas_manager.update_idea(db, idea_id, changes, EDITABLE_FIELDS)
    if updated.status != previous_status:
        NotificationManager(db).notify_status_change(
            updated, previous_status, current_user.id
        )
    return updated


@router.delete("/{idea_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_idea(
    idea_id: int,
    current_user: User = Depends(check_permission(Permission.DELETE_IDEA)),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    if not ideas_manager.delete_idea(db, idea_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Idea not found")
    logger.info(f"User {current_user.id} deleted idea {idea_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Votes ---


@router.post("/{idea_id}/vote", response_model=VoteResult)
async def vote(
    idea_id: int,
    current_user: User = Depends(check_permission(Permission.VOTE)),
    db: Session = Depends(get_db),
):
    outcome = VotingManager(db).vote(idea_id, current_user.id)
    if outcome is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Idea not found")
    if outcome.changed:
        NotificationManager(db).notify_vote(
            outcome.idea, current_user.id, current_user.display_name
        )
    return VoteResult(
        message="Vote recorded" if outcome.changed else "Already voted",
        voted=outcome.voted,
        changed=outcome.changed,
        idea=IdeaResponse.model_validate(outcome.idea),
    )


@router.delete("/{idea_id}/vote", response_model=VoteResult)
async def unvote(
    idea_id: int,
    current_user: User = Depends(check_permission(Permission.VOTE)),
    db: Session = Depends(get_db),
):
    outcome = VotingManager(db).unvote(idea_id, current_user.id)
    if outcome is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Idea not found")
    return VoteResult(
        message="Vote removed" if outcome.changed else "No vote to remove",
        voted=outcome.voted,
        changed=outcome.changed,
        idea=IdeaResponse.model_validate(outcome.idea),
    )


# --- Comments ---


@router.get("/{idea_id}/comments", response_model=List[CommentResponse])
async def list_comments(
    idea_id: int,
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    require_idea(db, ideas_manager, idea_id)
    return CommentManager(db).list_comments(idea_id)


@router.post(
    "/{idea_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    idea_id: int,
    comment_in: CommentCreate,
    current_user: User = Depends(check_permission(Permission.COMMENT)),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    idea = require_idea(db, ideas_manager, idea_id)
    try:
        comment = CommentManager(db).add_comment(
            idea, current_user.id, comment_in.content, comment_in.parent_id
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    NotificationManager(db).notify_comment(idea, current_user.id, current_user.display_name)
    return comment


# --- Follows ---


@router.get("/{idea_id}/follow", response_model=FollowStatus)
async def follow_status(
    idea_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    idea = require_idea(db, ideas_manager, idea_id)
    return FollowStatus(is_followed=FollowManager(db).is_following(current_user.id, idea))


@router.post("/{idea_id}/follow", response_model=FollowResponse)
async def follow(
    idea_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    idea = require_idea(db, ideas_manager, idea_id)
    follows = FollowManager(db)
    already_following = follows.is_following(current_user.id, idea)
    row = follows.follow(current_user.id, idea)
    if not already_following:
        NotificationManager(db).notify_follow(
            idea, current_user.id, current_user.display_name
        )
    return row


@router.delete("/{idea_id}/follow", response_model=FollowStatus)
async def unfollow(
    idea_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    idea = require_idea(db, ideas_manager, idea_id)
    if not FollowManager(db).unfollow(current_user.id, idea):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="You are not following this item"
        )
    return FollowStatus(is_followed=False)


# --- Challenge participants ---


@router.get("/{idea_id}/participants", response_model=List[ParticipantResponse])
async def list_participants(
    idea_id: int,
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    require_idea(db, ideas_manager, idea_id)
    return ChallengeManager(db).list_participants(idea_id)


@router.post("/{idea_id}/participants", response_model=ParticipantResponse)
async def join_challenge(
    idea_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    idea = require_idea(db, ideas_manager, idea_id)
    try:
        return ChallengeManager(db).join(current_user.id, idea)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{idea_id}/participants")
async def leave_challenge(
    idea_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
) -> Dict[str, str]:
    idea = require_idea(db, ideas_manager, idea_id)
    if not ChallengeManager(db).leave(current_user.id, idea):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="You are not a participant of this challenge",
        )
    return {"message": "Left challenge"}


# --- Admin actions ---


@router.post("/{idea_id}/assign", response_model=IdeaDetailResponse)
async def assign_role(
    idea_id: int,
    assignment: RoleAssignmentRequest,
    current_user: User = Depends(check_permission(Permission.ASSIGN_ROLES)),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    """
    Attach a reviewer, transformer or implementer, either an existing user
    or a pending email address.
    """
    try:
        idea = ideas_manager.assign_role(
            db, idea_id, assignment.role, assignment.user_id, assignment.email
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if idea is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Idea not found")

    role = assignment.role.value
    assignee = getattr(idea, role)
    label = assignee.display_name if assignee is not None else assignment.email
    NotificationManager(db).notify_assignment(
        idea, role, assignment.user_id, label, current_user.id
    )
    return build_idea_detail(db, idea, current_user)


@router.post("/{idea_id}/status", response_model=IdeaResponse)
async def change_status(
    idea_id: int,
    change: StatusChangeRequest,
    current_user: User = Depends(check_permission(Permission.CHANGE_STATUS)),
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    return apply_status_change(db, ideas_manager, idea_id, change.status, current_user.id)

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..database import utcnow
from ..models.idea import AssignmentRole, Idea, IdeaCategory, IdeaStatus
from ..models.user import User

logger = logging.getLogger("ideaportal.ideas")

SORTABLE_COLUMNS = {
    "title": Idea.title,
    "category": Idea.category,
    "department": Idea.department,
    "status": Idea.status,
    "priority": Idea.priority,
    "votes": Idea.votes,
    "created_at": Idea.created_at,
    "updated_at": Idea.updated_at,
}
_SORT_ALIASES = {"createdAt": "created_at", "updatedAt": "updated_at"}

# Fields a submitter (or staff) may change through a regular edit.
EDITABLE_FIELDS = (
    "title",
    "description",
    "category",
    "department",
    "priority",
    "status",
    "tags",
    "impact",
    "inspiration",
    "similar_solutions",
    "organization_category",
)
ADMIN_FIELDS = (
    "admin_notes",
    "impact",
    "priority",
    "impact_score",
    "cost_saved",
    "revenue_generated",
)
# Plural keys used when grouping search results.
CATEGORY_GROUPS = {
    IdeaCategory.OPPORTUNITY.value: "ideas",
    IdeaCategory.CHALLENGE.value: "challenges",
    IdeaCategory.PAIN_POINT.value: "pain_points",
}


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def resolve_sort(sort_by: Optional[str], sort_direction: Optional[str]):
    """Return an ORDER BY clause list, raising ValueError for unknown columns."""
    key = _SORT_ALIASES.get(sort_by or "", sort_by or "created_at")
    column = SORTABLE_COLUMNS.get(key)
    if column is None:
        raise ValueError(
            f"Unsupported sort_by '{sort_by}'. Use one of: {', '.join(SORTABLE_COLUMNS)}"
        )
    direction = (sort_direction or "desc").lower()
    if direction not in {"asc", "desc"}:
        raise ValueError("sort_direction must be 'asc' or 'desc'")
    primary = column.asc() if direction == "asc" else column.desc()
    tiebreak = Idea.id.asc() if direction == "asc" else Idea.id.desc()
    return [primary, tiebreak]


class IdeasManager:
    """Manages idea, pain-point and challenge submissions using SQLAlchemy."""

    def _base_query(self, db: Session):
        return db.query(Idea).options(
            joinedload(Idea.submitter), joinedload(Idea.assigned_to)
        )

    def create_idea(
        self,
        db: Session,
        submitted_by_id: int,
        idea_data: Dict[str, Any],
        media_urls: Optional[List[Dict[str, str]]] = None,
    ) -> Idea:
        """Create a submission. New items always start as submitted with zero votes."""
        req_id = uuid.uuid4()
        db_idea = Idea(
            title=idea_data["title"],
            description=idea_data["description"],
            category=_plain(idea_data["category"]),
            department=_plain(idea_data.get("department")) or "Other",
            priority=_plain(idea_data.get("priority")) or "medium",
            status=IdeaStatus.SUBMITTED.value,
            votes=0,
            tags=list(idea_data.get("tags") or []),
            impact=idea_data.get("impact"),
            inspiration=idea_data.get("inspiration"),
            similar_solutions=idea_data.get("similar_solutions"),
            organization_category=idea_data.get("organization_category"),
            attachments=list(idea_data.get("attachments") or []),
            media_urls=list(media_urls or []),
            attachment_url=idea_data.get("attachment_url"),
            submitted_by_id=submitted_by_id,
        )
        try:
            db.add(db_idea)
            db.commit()
            db.refresh(db_idea)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[{req_id}] Error creating idea for user {submitted_by_id}: {e}")
            raise
        logger.info(
            f"[{req_id}] User {submitted_by_id} submitted {db_idea.category} {db_idea.id}: {db_idea.title!r}"
        )
        return db_idea

    def get_idea(self, db: Session, idea_id: int) -> Optional[Idea]:
        """Get a specific idea by its ID."""
        return self._base_query(db).filter(Idea.id == idea_id).first()

    def list_ideas(
        self,
        db: Session,
        *,
        status: Optional[str] = None,
        category: Optional[str] = None,
        department: Optional[str] = None,
        priority: Optional[str] = None,
        submitted_by_id: Optional[int] = None,
        assigned_to_id: Optional[int] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = "created_at",
        sort_direction: Optional[str] = "desc",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Idea]:
        """Filtered, sorted and paginated listing used by every idea list endpoint."""
        query = self._base_query(db)
        if status:
            query = query.filter(Idea.status == _plain(status))
        if category:
            query = query.filter(Idea.category == _plain(category))
        if department:
            query = query.filter(Idea.department == _plain(department))
        if priority:
            query = query.filter(Idea.priority == _plain(priority))
        if submitted_by_id is not None:
            query = query.filter(Idea.submitted_by_id == submitted_by_id)
        if assigned_to_id is not None:
            query = query.filter(Idea.assigned_to_id == assigned_to_id)
        cleaned = (search or "").strip()
        if cleaned:
            pattern = f"%{cleaned}%"
            query = query.filter(
                or_(Idea.title.ilike(pattern), Idea.description.ilike(pattern))
            )

        query = query.order_by(*resolve_sort(sort_by, sort_direction))
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    def get_review_queue(self, db: Session) -> List[Idea]:
        """Submitted items awaiting triage, oldest first."""
        return self.list_ideas(
            db,
            status=IdeaStatus.SUBMITTED.value,
            sort_by="created_at",
            sort_direction="asc",
        )

    def update_idea(
        self,
        db: Session,
        idea_id: int,
        updated_data: Dict[str, Any],
        allowed_fields=EDITABLE_FIELDS,
    ) -> Optional[Idea]:
        """Apply the non-None values of `updated_data` restricted to `allowed_fields`."""
        req_id = uuid.uuid4()
        db_idea = self.get_idea(db, idea_id)
        if not db_idea:
            logger.info(f"[{req_id}] Idea {idea_id} not found for update.")
            return None

        changed = []
        for field in allowed_fields:
            if field not in updated_data or updated_data[field] is None:
                continue
            value = updated_data[field]
            value = list(value) if field == "tags" else _plain(value)
            if getattr(db_idea, field) != value:
                setattr(db_idea, field, value)
                changed.append(field)

        if "category" in changed:
            # Follow rows are keyed by item type and move with the item.
            for follow in db_idea.follows:
                follow.item_type = db_idea.category

        if not changed:
            logger.debug(f"[{req_id}] No changes for idea {idea_id}.")
            return db_idea
        try:
            db.commit()
            db.refresh(db_idea)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[{req_id}] Error updating idea {idea_id}: {e}")
            raise
        logger.info(f"[{req_id}] Updated idea {idea_id}: {', '.join(changed)}")
        return db_idea

    def change_status(
        self, db: Session, idea_id: int, status: str
    ) -> Optional[Tuple[Idea, str]]:
        """Set the workflow status. Returns (idea, previous_status) or None if missing."""
        new_status = IdeaStatus(_plain(status)).value
        db_idea = self.get_idea(db, idea_id)
        if not db_idea:
            return None
        previous = db_idea.status
        if previous != new_status:
            db_idea.status = new_status
            try:
                db.commit()
                db.refresh(db_idea)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Error changing status of idea {idea_id}: {e}")
                raise
            logger.info(f"Idea {idea_id} status {previous} -> {new_status}")
        return db_idea, previous

    def assign_role(
        self,
        db: Session,
        idea_id: int,
        role: str,
        user_id: Optional[int] = None,
        email: Optional[str] = None,
    ) -> Optional[Idea]:
        """
        Attach a reviewer/transformer/implementer to an idea, either as an
        existing user or as a pending email address. Setting one form clears
        the other. Raises ValueError for an unknown user id.
        """
        role_name = AssignmentRole(_plain(role)).value
        db_idea = self.get_idea(db, idea_id)
        if not db_idea:
            return None
        if user_id is not None and db.get(User, user_id) is None:
            raise ValueError(f"User {user_id} does not exist")

        setattr(db_idea, f"{role_name}_id", user_id)
        setattr(db_idea, f"{role_name}_email", None if user_id is not None else email)
        db_idea.updated_at = utcnow()
        try:
            db.commit()
            db.refresh(db_idea)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error assigning {role_name} on idea {idea_id}: {e}")
            raise
        logger.info(
            f"Idea {idea_id} {role_name} set to "
            f"{'user ' + str(user_id) if user_id is not None else 'pending ' + str(email)}"
        )
        return db_idea

    def set_assignee(
        self, db: Session, idea_id: int, user_id: Optional[int]
    ) -> Optional[Idea]:
        db_idea = self.get_idea(db, idea_id)
        if not db_idea:
            return None
        if user_id is not None and db.get(User, user_id) is None:
            raise ValueError(f"User {user_id} does not exist")
        db_idea.assigned_to_id = user_id
        db_idea.updated_at = utcnow()
        try:
            db.commit()
            db.refresh(db_idea)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error assigning idea {idea_id}: {e}")
            raise
        logger.info(f"Idea {idea_id} assigned to {user_id}")
        return db_idea

    def delete_idea(self, db: Session, idea_id: int) -> bool:
        """Delete an idea; comments, votes, follows, notifications and participants go with it."""
        db_idea = db.get(Idea, idea_id)
        if not db_idea:
            return False
        try:
            db.delete(db_idea)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error deleting idea {idea_id}: {e}")
            raise
        logger.info(f"Deleted idea {idea_id}")
        return True

    def search(self, db: Session, query_text: str, limit: int = 50) -> Dict[str, List[Idea]]:
        """Case-insensitive match on title/description/department, grouped by category."""
        pattern = f"%{query_text.strip()}%"
        matches = (
            self._base_query(db)
            .filter(
                or_(
                    Idea.title.ilike(pattern),
                    Idea.description.ilike(pattern),
                    Idea.department.ilike(pattern),
                )
            )
            .order_by(Idea.votes.desc(), Idea.created_at.desc(), Idea.id.desc())
            .limit(limit)
            .all()
        )
        grouped: Dict[str, List[Idea]] = {key: [] for key in CATEGORY_GROUPS.values()}
        for idea in matches:
            group = CATEGORY_GROUPS.get(idea.category)
            if group:
                grouped[group].append(idea)
        return grouped

    def suggestions(self, db: Session, query_text: str, limit: int = 10) -> List[Dict[str, Any]]:
        cleaned = (query_text or "").strip()
        if len(cleaned) < 2:
            return []
        rows = (
            db.query(Idea.id, Idea.title, Idea.category)
            .filter(Idea.title.ilike(f"%{cleaned}%"))
            .order_by(Idea.votes.desc(), Idea.id.desc())
            .limit(limit)
            .all()
        )
        return [{"id": row.id, "title": row.title, "category": row.category} for row in rows]


def get_ideas_manager() -> IdeasManager:
    return IdeasManager()

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, UTC
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ideaportal.models.idea import Idea, IdeaCategory, IdeaStatus, normalize_category
from ideaportal.models.user import User

logger = logging.getLogger("ideaportal.leaderboard")

TIME_RANGES = (
    "all-time",
    "this-week",
    "last-week",
    "this-month",
    "last-month",
    "this-year",
    "custom",
)
SORT_OPTIONS = ("ideas", "votes", "implemented", "impact", "newest")
# Older dashboards ask for "approved" when they mean implemented.
_SORT_ALIASES = {"approved": "implemented"}

SUBMISSION_WEIGHT = 2
IMPLEMENTED_WEIGHT = 5


def impact_score(submitted: int, implemented: int, votes: int) -> int:
    return submitted * SUBMISSION_WEIGHT + implemented * IMPLEMENTED_WEIGHT + votes


def contributor_status(score: int, submitted: int) -> str:
    if score > 50:
        return "Top Contributor"
    if submitted > 2:
        return "Active Contributor"
    return "New Contributor"


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def resolve_time_window(
    time_range: Optional[str],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Turn a named range into a half-open [start, end) UTC window.
    (None, None) means no time filter. Weeks start on Monday; a custom
    range includes the whole end day. Raises ValueError on bad input.
    """
    name = (time_range or "all-time").strip().lower()
    if name not in TIME_RANGES:
        raise ValueError(
            f"Unsupported time_range '{time_range}'. Use one of: {', '.join(TIME_RANGES)}"
        )
    now = now or datetime.now(UTC)
    today = now.date()

    if name == "all-time":
        return None, None
    if name == "this-week":
        return _midnight(today - timedelta(days=today.weekday())), now
    if name == "last-week":
        this_week = _midnight(today - timedelta(days=today.weekday()))
        return this_week - timedelta(days=7), this_week
    if name == "this-month":
        return _midnight(today.replace(day=1)), now
    if name == "last-month":
        this_month = today.replace(day=1)
        previous = (this_month - timedelta(days=1)).replace(day=1)
        return _midnight(previous), _midnight(this_month)
    if name == "this-year":
        return _midnight(today.replace(month=1, day=1)), now

    if start_date is None or end_date is None:
        raise ValueError("A custom time_range needs both start_date and end_date")
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")
    return _midnight(start_date), _midnight(end_date + timedelta(days=1))


@dataclass(frozen=True)
class LeaderboardQuery:
    time_range: str = "all-time"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category: Optional[str] = None
    department: Optional[str] = None
    sort_by: str = "ideas"
    limit: int = 50


class LeaderboardService:
    """Ranks submitters with a single grouped aggregate over ideas joined to users."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_leaderboard(
        self, params: LeaderboardQuery, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        start, end = resolve_time_window(
            params.time_range, params.start_date, params.end_date, now=now
        )
        sort_key = _SORT_ALIASES.get(params.sort_by, params.sort_by or "ideas")
        if sort_key not in SORT_OPTIONS:
            raise ValueError(
                f"Unsupported sort_by '{params.sort_by}'. Use one of: {', '.join(SORT_OPTIONS)}"
            )

        category = normalize_category(params.category)
        if category in (None, "", "all"):
            category = None
        elif category not in {c.value for c in IdeaCategory}:
            raise ValueError(f"Unsupported category '{params.category}'")
        department = params.department
        if department in ("", "all"):
            department = None

        submitted = func.count(Idea.id)
        implemented = func.coalesce(
            func.sum(case((Idea.status == IdeaStatus.IMPLEMENTED.value, 1), else_=0)), 0
        )
        votes = func.coalesce(func.sum(Idea.votes), 0)
        score = (
            submitted * SUBMISSION_WEIGHT + implemented * IMPLEMENTED_WEIGHT + votes
        )
        last_submission = func.max(Idea.created_at)

        def _count_category(value: IdeaCategory):
            return func.coalesce(
                func.sum(case((Idea.category == value.value, 1), else_=0)), 0
            )

        query = (
            self.db.query(
                User.id.label("user_id"),
                User.display_name,
                User.department,
                User.avatar_url,
                submitted.label("ideas_submitted"),
                implemented.label("ideas_implemented"),
                votes.label("votes_received"),
                _count_category(IdeaCategory.OPPORTUNITY).label("ideas"),
                _count_category(IdeaCategory.CHALLENGE).label("challenges"),
                _count_category(IdeaCategory.PAIN_POINT).label("pain_points"),
                last_submission.label("last_submission_date"),
            )
            .join(Idea, Idea.submitted_by_id == User.id)
        )
        if start is not None:
            query = query.filter(Idea.created_at >= start)
        if end is not None:
            query = query.filter(Idea.created_at < end)
        if category:
            query = query.filter(Idea.category == category)
        if department:
            query = query.filter(User.department == getattr(department, "value", department))

        order_column = {
            "ideas": submitted,
            "votes": votes,
            "implemented": implemented,
            "impact": score,
            "newest": last_submission,
        }[sort_key]
        rows = (
            query.group_by(User.id, User.display_name, User.department, User.avatar_url)
            .order_by(order_column.desc(), User.id.asc())
            .limit(params.limit)
            .all()
        )

        entries = []
        for rank, row in enumerate(rows, start=1):
            row_score = impact_score(
                int(row.ideas_submitted), int(row.ideas_implemented), int(row.votes_received)
            )
            entries.append(
                {
                    "rank": rank,
                    "user_id": row.user_id,
                    "display_name": row.display_name,
                    "department": row.department,
                    "avatar_url": row.avatar_url,
                    "ideas_submitted": int(row.ideas_submitted),
                    "ideas_implemented": int(row.ideas_implemented),
                    "votes_received": int(row.votes_received),
                    "impact_score": row_score,
                    "category_breakdown": {
                        "ideas": int(row.ideas),
                        "challenges": int(row.challenges),
                        "pain_points": int(row.pain_points),
                    },
                    "last_submission_date": row.last_submission_date,
                    "contributor_status": contributor_status(
                        row_score, int(row.ideas_submitted)
                    ),
                }
            )
        logger.debug(
            f"Leaderboard range={params.time_range} category={category} "
            f"department={department} sort={sort_key} -> {len(entries)} rows"
        )
        return entries

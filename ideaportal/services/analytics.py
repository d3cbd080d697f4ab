from __future__ import annotations

from collections import Counter
from datetime import datetime, time, timedelta, UTC
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session, joinedload

from ideaportal.models.idea import Idea, IdeaCategory, IdeaStatus, normalize_category

logger = logging.getLogger("ideaportal.analytics")

DEFAULT_VOLUME_DAYS = 5
MAX_VOLUME_DAYS = 90

CATEGORY_CHART = (
    (IdeaCategory.OPPORTUNITY, "Ideas", "#4CAF50"),
    (IdeaCategory.CHALLENGE, "Challenges", "#2196F3"),
    (IdeaCategory.PAIN_POINT, "Pain Points", "#F44336"),
)


def _as_date(value: datetime):
    # SQLite hands back naive datetimes; they were written as UTC.
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.date()


class AnalyticsService:
    """Dashboard read models: headline metrics and chart series."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_metrics(self, category: Optional[str] = None) -> Dict[str, int]:
        category = normalize_category(category)
        if category in ("", "all"):
            category = None
        if category is not None and category not in {c.value for c in IdeaCategory}:
            raise ValueError(f"Unsupported category '{category}'")

        query = self.db.query(
            func.count(Idea.id),
            func.coalesce(
                func.sum(case((Idea.status == IdeaStatus.IN_REVIEW.value, 1), else_=0)), 0
            ),
            func.coalesce(
                func.sum(case((Idea.status == IdeaStatus.IMPLEMENTED.value, 1), else_=0)), 0
            ),
            func.coalesce(func.sum(Idea.cost_saved), 0),
            func.coalesce(func.sum(Idea.revenue_generated), 0),
        )
        if category:
            query = query.filter(Idea.category == category)
        total, in_review, implemented, cost_saved, revenue = query.one()
        return {
            "ideas_submitted": int(total),
            "in_review": int(in_review),
            "implemented": int(implemented),
            "cost_saved": int(cost_saved),
            "revenue_generated": int(revenue),
        }

    def category_distribution(self) -> List[Dict[str, Any]]:
        counts = dict(
            self.db.query(Idea.category, func.count(Idea.id)).group_by(Idea.category).all()
        )
        return [
            {"name": label, "value": int(counts.get(category.value, 0)), "fill": fill}
            for category, label, fill in CATEGORY_CHART
        ]

    def status_distribution(self) -> List[Dict[str, Any]]:
        """One slice per status, including those with no items."""
        counts = dict(
            self.db.query(Idea.status, func.count(Idea.id)).group_by(Idea.status).all()
        )
        return [
            {"name": status.value, "value": int(counts.get(status.value, 0))}
            for status in IdeaStatus
        ]

    def submission_volume(
        self, days: int = DEFAULT_VOLUME_DAYS, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Running total of submissions at the end of each of the last `days`
        days, today included. `days` is clamped to [1, MAX_VOLUME_DAYS].
        """
        days = max(1, min(int(days), MAX_VOLUME_DAYS))
        today = (now or datetime.now(UTC)).date()
        first_day = today - timedelta(days=days - 1)
        window_start = datetime.combine(first_day, time.min, tzinfo=UTC)

        running = (
            self.db.query(func.count(Idea.id))
            .filter(Idea.created_at < window_start)
            .scalar()
            or 0
        )
        per_day = Counter(
            _as_date(created_at)
            for (created_at,) in self.db.query(Idea.created_at)
            .filter(Idea.created_at >= window_start)
            .all()
        )

        points = []
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            running += per_day.get(day, 0)
            points.append({"date": day, "count": running})
        logger.debug(f"Volume over {days} days ending {today}: {running} total")
        return points

    def recent_activity(self, limit: int = 5) -> List[Idea]:
        return (
            self.db.query(Idea)
            .options(joinedload(Idea.submitter), joinedload(Idea.assigned_to))
            .order_by(Idea.created_at.desc(), Idea.id.desc())
            .limit(limit)
            .all()
        )

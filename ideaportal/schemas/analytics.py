from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ideaportal.schemas.idea import IdeaResponse


class CategoryBreakdown(BaseModel):
    ideas: int = 0
    challenges: int = 0
    pain_points: int = 0


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    display_name: str
    department: Optional[str] = None
    avatar_url: Optional[str] = None
    ideas_submitted: int
    ideas_implemented: int
    votes_received: int
    impact_score: int
    category_breakdown: CategoryBreakdown
    last_submission_date: Optional[datetime] = None
    contributor_status: str


class Metrics(BaseModel):
    ideas_submitted: int = 0
    in_review: int = 0
    implemented: int = 0
    cost_saved: int = 0
    revenue_generated: int = 0


class ChartSlice(BaseModel):
    name: str
    value: int
    fill: Optional[str] = None


class VolumePoint(BaseModel):
    date: date
    count: int


class SearchResults(BaseModel):
    ideas: List[IdeaResponse] = Field(default_factory=list)
    challenges: List[IdeaResponse] = Field(default_factory=list)
    pain_points: List[IdeaResponse] = Field(default_factory=list)


class Suggestion(BaseModel):
    id: int
    title: str
    category: str

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ideaportal.data.ideas_manager import IdeasManager, get_ideas_manager
from ideaportal.database import get_db
from ideaportal.schemas.analytics import (
    ChartSlice,
    LeaderboardEntry,
    Metrics,
    SearchResults,
    Suggestion,
    VolumePoint,
)
from ideaportal.services.analytics import DEFAULT_VOLUME_DAYS, AnalyticsService
from ideaportal.services.leaderboard import LeaderboardQuery, LeaderboardService

router = APIRouter(prefix="/api", tags=["analytics"])


@router.get("/metrics", response_model=Metrics)
async def get_metrics(category: Optional[str] = None, db: Session = Depends(get_db)):
    try:
        return AnalyticsService(db).get_metrics(category)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    time_range: str = "all-time",
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    category: Optional[str] = None,
    department: Optional[str] = None,
    sort_by: str = "ideas",
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
):
    params = LeaderboardQuery(
        time_range=time_range,
        start_date=start_date,
        end_date=end_date,
        category=category,
        department=department,
        sort_by=sort_by,
        limit=limit,
    )
    try:
        return LeaderboardService(db).get_leaderboard(params)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/chart/categories", response_model=List[ChartSlice])
async def category_chart(db: Session = Depends(get_db)):
    return AnalyticsService(db).category_distribution()


@router.get("/chart/statuses", response_model=List[ChartSlice])
async def status_chart(db: Session = Depends(get_db)):
    return AnalyticsService(db).status_distribution()


@router.get("/chart/volume", response_model=List[VolumePoint])
async def volume_chart(
    days: int = Query(DEFAULT_VOLUME_DAYS, ge=1), db: Session = Depends(get_db)
):
    return AnalyticsService(db).submission_volume(days)


@router.get("/search", response_model=SearchResults)
async def search(
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    if not q or not q.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Search query is required"
        )
    return ideas_manager.search(db, q)


@router.get("/search/suggestions", response_model=List[Suggestion])
async def search_suggestions(
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    ideas_manager: IdeasManager = Depends(get_ideas_manager),
):
    return ideas_manager.suggestions(db, q or "")

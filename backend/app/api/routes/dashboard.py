"""
Dashboard API: stat cards and chart data for the back-office home screen.
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.models.user import User
from app.schemas.dashboard import DailySales, DashboardSummary, TopMedicine
from app.services import dashboard_service

router = APIRouter()


@router.get("/summary", response_model=DashboardSummary)
def get_summary(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return dashboard_service.summary(db)


@router.get("/daily-sales", response_model=List[DailySales])
def get_daily_sales(
    days: int = Query(7, ge=1, le=90, description="Number of days to include"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Revenue per day for the bar chart, oldest first."""
    return dashboard_service.daily_sales(db, days=days)


@router.get("/top-medicines", response_model=List[TopMedicine])
def get_top_medicines(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return dashboard_service.top_medicines(db, limit=limit)

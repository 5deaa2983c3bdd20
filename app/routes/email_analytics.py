"""
Email analytics routes.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..responses import success
from ..services import analytics

router = APIRouter(prefix="/api/email/analytics", tags=["email-analytics"])


@router.get("")
def get_analytics(
    days: int = Query(30, ge=1, le=365),
    type: Optional[str] = None,
    userId: Optional[int] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """
    Delivery metrics.

    type=performance returns the most recent sends, type=by-type groups by
    email type, type=user with a userId scopes to one customer. Anything else
    returns overall metrics for the last ``days`` days.
    """
    if type == "performance":
        return success(performance=analytics.recent_performance(db, limit))

    if type == "by-type":
        return success(metrics=analytics.metrics_by_type(db, days))

    if type == "user" and userId is not None:
        return success(metrics=analytics.user_metrics(db, userId))

    return success(metrics=analytics.overall_metrics(db, days))

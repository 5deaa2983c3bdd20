"""
Email preference routes for the signed-in customer.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_required_user
from ..database import get_db
from ..logging_config import api_logger
from ..rate_limiter import rate_limit
from ..responses import isoformat, success
from ..schemas.preferences import PreferencesUpdate
from ..services.preferences import get_preferences, merge_preferences

router = APIRouter(prefix="/api/email/preferences", tags=["email-preferences"])


@router.get("")
def read_preferences(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_required_user),
):
    return success(preferences=get_preferences(db, current_user.id))


@router.put("", dependencies=[Depends(rate_limit("preferences"))])
def update_preferences(
    body: PreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_required_user),
):
    """Merge the provided category flags into the caller's preferences"""
    preferences = merge_preferences(db, current_user.id, body.preferences)
    api_logger.info("Updated email preferences", customer_id=current_user.id)
    return success(preferences=preferences, updatedAt=isoformat())

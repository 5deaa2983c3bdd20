"""
Email campaign routes: create, list, schedule, launch and cancel.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..errors import StateError
from ..responses import success
from ..schemas.campaign import CampaignCreate
from ..worker.scheduler import CampaignParams, CampaignScheduler

router = APIRouter(prefix="/api/email/campaigns", tags=["email-campaigns"])


@router.get("")
def get_campaigns(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List campaigns with optional status filter, soonest first."""
    campaigns = CampaignScheduler(db).list_campaigns(status or None)
    return success(campaigns=[c.to_dict() for c in campaigns])


@router.post("", status_code=201)
def create_campaign(
    campaign_data: CampaignCreate,
    db: Session = Depends(get_db),
):
    """Create a draft campaign."""
    campaign = CampaignScheduler(db).create(CampaignParams(**campaign_data.model_dump()))
    return success(id=campaign.id)


@router.get("/{campaign_id}")
def get_campaign(campaign_id: int, db: Session = Depends(get_db)):
    campaign = CampaignScheduler(db).get(campaign_id)
    return success(campaign=campaign.to_dict())


@router.post("/{campaign_id}/schedule")
def schedule_campaign(campaign_id: int, db: Session = Depends(get_db)):
    """Move a draft campaign to scheduled."""
    campaign = CampaignScheduler(db).schedule(campaign_id)
    return success(campaign=campaign.to_dict())


@router.post("/{campaign_id}/launch")
def launch_campaign(campaign_id: int, db: Session = Depends(get_db)):
    """Queue the campaign for every matching recipient."""
    result = CampaignScheduler(db).launch(campaign_id)
    return success(queuedCount=result.queued_count)


@router.post("/{campaign_id}/cancel")
def cancel_campaign(campaign_id: int, db: Session = Depends(get_db)):
    if not CampaignScheduler(db).cancel(campaign_id):
        raise StateError("Campaign cannot be cancelled", campaign_id=campaign_id)
    return success()

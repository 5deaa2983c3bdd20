from pydantic import BaseModel
from typing import Any, Dict, Optional


class CampaignCreate(BaseModel):
    # Required fields are checked by the scheduler so a missing one gets
    # the same message whether it was absent or blank.
    name: Optional[str] = None
    email_type: Optional[str] = None
    subject: Optional[str] = None
    scheduled_for: Optional[str] = None
    template_id: Optional[str] = None
    template_data: Dict[str, Any] = {}
    segment_criteria: Dict[str, Any] = {}
    created_by: Optional[str] = None

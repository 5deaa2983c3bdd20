"""
Campaign Scheduler

Owns the marketing campaign lifecycle:
- draft -> scheduled -> sent
- draft -> sent
- draft | scheduled -> cancelled

sent and cancelled are terminal. Every transition is a conditional update at
the database, so a cancel racing a launch is settled by whichever commits
first; the loser sees zero rows changed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    EmptyAudienceError,
    InvalidStateError,
    NotFoundError,
    StateError,
    StoreError,
    ValidationError,
)
from ..logging_config import get_logger
from ..models.email_campaign import EmailCampaign
from ..models.email_queue_entry import EmailQueueEntry, PRIORITY_MARKETING
from ..services.segmentation import count_recipients, resolve_recipients, validate_criteria

logger = get_logger("scheduler")

CAMPAIGN_EMAIL_TYPES = ("newsletter", "sales", "personalized")


@dataclass
class CampaignParams:
    """Input for a new campaign"""
    name: Optional[str]
    email_type: Optional[str]
    subject: Optional[str]
    scheduled_for: Union[str, datetime, None]
    template_id: Optional[str] = None
    template_data: Dict[str, Any] = field(default_factory=dict)
    segment_criteria: Dict[str, Any] = field(default_factory=dict)
    created_by: Optional[str] = None


@dataclass
class LaunchResult:
    campaign_id: int
    queued_count: int


def parse_instant(value: Union[str, datetime, None]) -> datetime:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("Invalid scheduled_for date")
    else:
        raise ValidationError("Invalid scheduled_for date")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class CampaignScheduler:
    """
    Campaign state machine over the email_campaigns table.

    Launching materializes one queue entry per recipient; the queue processor
    takes it from there.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get(self, campaign_id: int) -> EmailCampaign:
        campaign = self.db.query(EmailCampaign).filter(EmailCampaign.id == campaign_id).first()
        if not campaign:
            raise NotFoundError("Campaign not found", campaign_id=campaign_id)
        return campaign

    def _transition(self, campaign_id: int, from_statuses, values: Dict) -> bool:
        """Conditional status update. True when a row actually changed."""
        values = dict(values)
        values[EmailCampaign.updated_at] = datetime.now(timezone.utc)
        rows = (
            self.db.query(EmailCampaign)
            .filter(EmailCampaign.id == campaign_id, EmailCampaign.status.in_(from_statuses))
            .update(values, synchronize_session=False)
        )
        return rows == 1

    def create(self, params: CampaignParams) -> EmailCampaign:
        """
        Validate and store a new draft campaign.

        Args:
            params: Campaign definition

        Returns:
            The persisted campaign, with an estimated recipient count
        """
        missing = [
            name for name in ("name", "email_type", "subject")
            if not isinstance(getattr(params, name), str) or not getattr(params, name).strip()
        ]
        if params.scheduled_for in (None, ""):
            missing.append("scheduled_for")
        if missing:
            raise ValidationError(
                "Missing required fields: name, email_type, subject, scheduled_for",
                details=missing,
            )

        if params.email_type not in CAMPAIGN_EMAIL_TYPES:
            raise ValidationError(
                f"Invalid email_type: {params.email_type}",
                details=[f"email_type must be one of: {', '.join(CAMPAIGN_EMAIL_TYPES)}"],
            )

        scheduled_for = parse_instant(params.scheduled_for)
        criteria = validate_criteria(params.segment_criteria or {})
        estimate = count_recipients(self.db, criteria)

        campaign = EmailCampaign(
            name=params.name.strip(),
            email_type=params.email_type,
            subject=params.subject,
            template_id=params.template_id,
            template_data=params.template_data or {},
            segment_criteria=criteria,
            status="draft",
            scheduled_for=scheduled_for,
            recipient_count=estimate,
            created_by=params.created_by,
        )
        self.db.add(campaign)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError("Failed to create campaign", operation="create_campaign", detail=str(e)) from e
        self.db.refresh(campaign)

        logger.info(
            "Created campaign",
            campaign_id=campaign.id,
            email_type=campaign.email_type,
            estimated_recipients=estimate,
        )
        return campaign

    def get(self, campaign_id: int) -> EmailCampaign:
        return self._get(campaign_id)

    def list_campaigns(self, status: Optional[str] = None) -> List[EmailCampaign]:
        """Campaigns by scheduled time, soonest first"""
        if status is not None and status not in EmailCampaign.STATUSES:
            raise ValidationError(f"Invalid status: {status}")

        query = self.db.query(EmailCampaign)
        if status:
            query = query.filter(EmailCampaign.status == status)
        return query.order_by(EmailCampaign.scheduled_for.asc(), EmailCampaign.id.asc()).all()

    def schedule(self, campaign_id: int) -> EmailCampaign:
        """Move a draft to scheduled"""
        self._get(campaign_id)
        changed = self._transition(campaign_id, ("draft",), {EmailCampaign.status: "scheduled"})
        self.db.commit()
        if not changed:
            raise InvalidStateError("Only draft campaigns can be scheduled", campaign_id=campaign_id)
        logger.info("Scheduled campaign", campaign_id=campaign_id)
        return self._get(campaign_id)

    def launch(self, campaign_id: int) -> LaunchResult:
        """
        Queue one email per live recipient and mark the campaign sent.

        The queue insert and the status change commit together; if either
        fails the campaign is left exactly as it was.

        Returns:
            LaunchResult with the actual number of queued emails
        """
        campaign = self._get(campaign_id)
        if campaign.status not in EmailCampaign.LAUNCHABLE:
            raise InvalidStateError(
                "Campaign can only be launched from draft or scheduled status",
                campaign_id=campaign_id,
                status=campaign.status,
            )

        recipients = resolve_recipients(self.db, campaign.segment_criteria or {})
        if not recipients:
            raise EmptyAudienceError("No recipients found for this segment", campaign_id=campaign_id)

        entries = [
            EmailQueueEntry(
                email_type=campaign.email_type,
                recipient_email=recipient.email,
                user_id=recipient.user_id,
                subject=campaign.subject,
                template_id=campaign.template_id,
                template_data=dict(campaign.template_data or {}),
                priority=PRIORITY_MARKETING,
                status="pending",
                scheduled_for=campaign.scheduled_for,
            )
            for recipient in recipients
        ]

        try:
            self.db.add_all(entries)
            self.db.flush()
            launched = self._transition(
                campaign_id,
                EmailCampaign.LAUNCHABLE,
                {
                    EmailCampaign.status: "sent",
                    EmailCampaign.sent_at: datetime.now(timezone.utc),
                    EmailCampaign.recipient_count: len(recipients),
                },
            )
            if not launched:
                # Cancelled or launched by someone else since we loaded it
                self.db.rollback()
                raise StateError("Campaign is no longer launchable", campaign_id=campaign_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError("Failed to launch campaign", operation="launch_campaign", campaign_id=campaign_id, detail=str(e)) from e

        logger.info("Launched campaign", campaign_id=campaign_id, queued=len(recipients))
        return LaunchResult(campaign_id=campaign_id, queued_count=len(recipients))

    def cancel(self, campaign_id: int) -> bool:
        """
        Cancel a draft or scheduled campaign.

        Returns:
            True if this call cancelled it, False if it was not cancellable
        """
        try:
            cancelled = self._transition(campaign_id, EmailCampaign.LAUNCHABLE, {EmailCampaign.status: "cancelled"})
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError("Failed to cancel campaign", operation="cancel_campaign", campaign_id=campaign_id, detail=str(e)) from e

        if cancelled:
            logger.info("Cancelled campaign", campaign_id=campaign_id)
        else:
            logger.warning("Campaign not cancellable", campaign_id=campaign_id)
        return cancelled

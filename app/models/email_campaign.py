"""
EmailCampaign model for scheduled marketing sends.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone
from ..database import Base


class EmailCampaign(Base):
    __tablename__ = "email_campaigns"

    STATUSES = ("draft", "scheduled", "sent", "cancelled")
    LAUNCHABLE = ("draft", "scheduled")

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email_type = Column(String(50), nullable=False)
    subject = Column(String(500), nullable=False)
    template_id = Column(String(100), nullable=True)
    template_data = Column(JSON, nullable=False, default=dict)
    segment_criteria = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), default="draft", nullable=False, index=True)
    scheduled_for = Column(DateTime, nullable=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    recipient_count = Column(Integer, default=0, nullable=False)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": self.id,
            "name": self.name,
            "email_type": self.email_type,
            "subject": self.subject,
            "template_id": self.template_id,
            "template_data": self.template_data or {},
            "segment_criteria": self.segment_criteria or {},
            "status": self.status,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "recipient_count": self.recipient_count,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

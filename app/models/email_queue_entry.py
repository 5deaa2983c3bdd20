"""
EmailQueueEntry model: one recipient-specific unit of pending delivery work.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index
from datetime import datetime, timezone
from ..database import Base


# Lower number = sent first
PRIORITY_TRANSACTIONAL = 1
PRIORITY_MARKETING = 5


class EmailQueueEntry(Base):
    __tablename__ = "email_queue"
    __table_args__ = (
        Index("ix_email_queue_due", "status", "priority", "scheduled_for"),
    )

    STATUSES = ("pending", "processing", "sent", "failed")

    id = Column(Integer, primary_key=True, index=True)
    email_type = Column(String(50), nullable=False)
    recipient_email = Column(String(255), nullable=False)
    user_id = Column(Integer, nullable=True, index=True)
    subject = Column(String(500), nullable=False)
    template_id = Column(String(100), nullable=True)
    template_data = Column(JSON, nullable=False, default=dict)
    priority = Column(Integer, default=PRIORITY_MARKETING, nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    scheduled_for = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    sent_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

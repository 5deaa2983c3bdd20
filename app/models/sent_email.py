"""
SentEmail model: the delivery-status ledger row for one accepted message.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text
from datetime import datetime, timezone
from ..database import Base


class SentEmail(Base):
    __tablename__ = "sent_emails"

    # sent -> delivered -> opened -> clicked, or sent/delivered -> bounced
    STATUSES = ("sent", "delivered", "opened", "clicked", "bounced")

    id = Column(Integer, primary_key=True, index=True)
    email_id = Column(String(255), unique=True, index=True, nullable=False)  # provider-assigned
    email_type = Column(String(50), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    recipient_email = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=False)
    status = Column(String(20), default="sent", nullable=False, index=True)
    sent_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)
    delivered_at = Column(DateTime, nullable=True)
    opened_at = Column(DateTime, nullable=True)
    clicked_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

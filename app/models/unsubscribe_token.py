"""
UnsubscribeToken model for one-click unsubscribe links.
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone
from ..database import Base


class UnsubscribeToken(Base):
    __tablename__ = "unsubscribe_tokens"

    TOKEN_TYPES = ("marketing", "all", "transactional")

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    token_type = Column(String(20), nullable=False, default="marketing")
    expires_at = Column(DateTime, nullable=False, index=True)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

"""
Order model. Only the fields the confirmation email reads and stamps are mapped.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, Text
from datetime import datetime, timezone
import uuid
from ..database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(String(50), unique=True, nullable=False)
    customer_id = Column(Integer, nullable=True, index=True)
    customer_name = Column(String(200), nullable=True)
    customer_email = Column(String(255), nullable=True)
    total = Column(Integer, nullable=False, default=0)  # cents
    items = Column(JSON, nullable=False, default=list)
    email_sent = Column(Boolean, default=False, nullable=False)
    email_sent_at = Column(DateTime, nullable=True)
    email_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

"""
Customer model. Only the fields the mail subsystem reads are mapped.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone
from ..database import Base


# Category flags stored in Customer.email_preferences
PREFERENCE_CATEGORIES = ("order_updates", "new_products", "sales", "blog")

DEFAULT_PREFERENCES = {
    "order_updates": True,
    "new_products": False,
    "sales": False,
    "blog": False,
}


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    # NULL means the customer never opted into the mail system at all
    email_preferences = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

"""
Per-customer email category preferences.
"""
from typing import Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, StoreError, ValidationError
from ..models.customer import Customer, DEFAULT_PREFERENCES, PREFERENCE_CATEGORIES


def effective_preferences(stored: Optional[Mapping[str, bool]]) -> Dict[str, bool]:
    """Stored flags over the defaults, restricted to the known categories."""
    merged = dict(DEFAULT_PREFERENCES)
    for key in PREFERENCE_CATEGORIES:
        if stored and key in stored:
            merged[key] = bool(stored[key])
    return merged


def validate_updates(updates: Mapping) -> Dict[str, bool]:
    """Keep only known categories; every provided value must be a real boolean."""
    errors = []
    clean = {}
    for key in PREFERENCE_CATEGORIES:
        if key not in updates:
            continue
        value = updates[key]
        if not isinstance(value, bool):
            errors.append(f"{key} must be a boolean value")
        else:
            clean[key] = value
    if errors:
        raise ValidationError("Invalid preferences values", details=errors)
    return clean


def get_preferences(db: Session, customer_id: int) -> Dict[str, bool]:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer profile not found", customer_id=customer_id)
    return effective_preferences(customer.email_preferences)


def merge_preferences(db: Session, customer_id: int, updates: Mapping) -> Dict[str, bool]:
    """Merge the provided flags into the customer's preferences and persist."""
    clean = validate_updates(updates)

    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer profile not found", customer_id=customer_id)

    merged = effective_preferences(customer.email_preferences)
    merged.update(clean)

    # Assign a new dict so the JSON column is flagged dirty
    customer.email_preferences = merged
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError("Failed to update preferences", operation="merge_preferences", customer_id=customer_id, detail=str(e)) from e
    return merged


def set_preferences_by_email(db: Session, email: str, preferences: Mapping[str, bool]) -> int:
    """
    Overwrite the preferences of every customer with ``email``.

    Does not commit: callers that combine this with another write own the
    transaction. Returns the number of customer rows matched.
    """
    return (
        db.query(Customer)
        .filter(Customer.email == email)
        .update({Customer.email_preferences: dict(preferences)}, synchronize_session=False)
    )

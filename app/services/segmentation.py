"""
Audience segmentation: segment criteria -> concrete recipient list.
"""
from dataclasses import dataclass
from typing import Dict, List, Mapping

from sqlalchemy.orm import Session

from ..errors import SegmentError
from ..models.customer import Customer, PREFERENCE_CATEGORIES


@dataclass(frozen=True)
class Recipient:
    user_id: int
    email: str


def validate_criteria(criteria: Mapping) -> Dict[str, bool]:
    """Reject unknown categories and non-boolean flags."""
    invalid = [key for key in criteria if key not in PREFERENCE_CATEGORIES]
    if invalid:
        raise SegmentError(f"Invalid segment criteria: {', '.join(sorted(invalid))}")
    non_bool = [key for key, value in criteria.items() if not isinstance(value, bool)]
    if non_bool:
        raise SegmentError(f"Segment criteria values must be booleans: {', '.join(sorted(non_bool))}")
    return dict(criteria)


def resolve_recipients(db: Session, criteria: Mapping[str, bool]) -> List[Recipient]:
    """
    Customers matching ``criteria``.

    Empty criteria select everyone who has a preferences record. Otherwise a
    customer matches when any requested category set to True is also True in
    their preferences. Criteria with no True value select nobody, so an
    all-False segment can never fan out to the whole list.
    """
    opted_in = (
        db.query(Customer.id, Customer.email, Customer.email_preferences)
        .filter(Customer.email_preferences.isnot(None))
        .order_by(Customer.id)
        .all()
    )

    if not criteria:
        return [Recipient(user_id=row.id, email=row.email) for row in opted_in]

    wanted = [key for key, value in criteria.items() if value]
    if not wanted:
        return []

    recipients = []
    for row in opted_in:
        prefs = row.email_preferences or {}
        if any(prefs.get(key) is True for key in wanted):
            recipients.append(Recipient(user_id=row.id, email=row.email))
    return recipients


def count_recipients(db: Session, criteria: Mapping[str, bool]) -> int:
    return len(resolve_recipients(db, criteria))

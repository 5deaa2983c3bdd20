"""
Provider delivery-event webhooks: signature verification and idempotent
status reconciliation against the sent-email ledger.
"""
import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import StoreError, ValidationError
from ..logging_config import webhook_logger as logger
from ..models.sent_email import SentEmail

DEFAULT_TOLERANCE_SECONDS = 15 * 60

# Which current statuses each new status may replace. Anything else would move
# a message backwards along its funnel, so the status write is skipped.
STATUS_PREDECESSORS = {
    "delivered": ("sent",),
    "opened": ("sent", "delivered"),
    "clicked": ("sent", "delivered", "opened"),
    "bounced": ("sent", "delivered"),
}

# First observation wins; replays never move these
TIMESTAMP_FIELDS = frozenset({"delivered_at", "opened_at", "clicked_at"})


@dataclass
class EventUpdate:
    status: str
    fields: Dict[str, Any]


# ============================================================
# SIGNATURE VERIFICATION
# ============================================================

def compute_signature(raw_body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the raw request body"""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def sign_payload(raw_body: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a signature header the way the provider does; used by tests and tooling"""
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(raw_body, secret)}"


def parse_signature_header(header: str) -> Optional[Tuple[int, str]]:
    """``t=<unix-seconds>,v1=<base64>`` -> (timestamp, signature), or None if malformed"""
    parts = {}
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep or not value:
            return None
        parts[key] = value
    if "t" not in parts or "v1" not in parts:
        return None
    try:
        return int(parts["t"]), parts["v1"]
    except ValueError:
        return None


def verify_signature(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """
    Check a webhook signature header against the raw body.

    Without a configured secret verification is skipped and the request is
    accepted; that mode is for local development and is logged every time.
    """
    if not secret:
        logger.warning("Webhook secret not configured, skipping signature verification")
        return True

    if not signature_header:
        logger.warning("Webhook rejected: missing signature header")
        return False

    parsed = parse_signature_header(signature_header)
    if parsed is None:
        logger.warning("Webhook rejected: malformed signature header")
        return False
    timestamp, received = parsed

    current = int(time.time() if now is None else now)
    if abs(current - timestamp) > tolerance_seconds:
        logger.warning("Webhook rejected: timestamp outside tolerance", age_seconds=current - timestamp)
        return False

    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8")):
        logger.warning("Webhook rejected: signature mismatch")
        return False
    return True


# ============================================================
# EVENT MAPPING
# ============================================================

def _parse_time(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _event_time(event: Dict, data: Dict, key: str) -> datetime:
    return (
        _parse_time(data.get(key))
        or _parse_time(data.get("created_at"))
        or _parse_time(event.get("created_at"))
        or datetime.now(timezone.utc)
    )


def event_data(event: Dict) -> Dict:
    """The event's ``data`` object; absent counts as empty"""
    data = event.get("data")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Event data must be a JSON object", event_type=event.get("type"))
    return data


def event_kind(event_type: str) -> str:
    """``email.delivered`` -> ``delivered``"""
    return event_type[len("email."):] if event_type.startswith("email.") else event_type


def map_event(event: Dict) -> Optional[EventUpdate]:
    """The ledger update an event implies, or None for types that are not tracked."""
    kind = event_kind(str(event.get("type", "")))
    data = event_data(event)

    if kind in ("delivered", "delivery_delayed"):
        return EventUpdate("delivered", {"delivered_at": _event_time(event, data, "delivered_at")})
    if kind == "opened":
        return EventUpdate("opened", {"opened_at": _event_time(event, data, "opened_at")})
    if kind == "clicked":
        return EventUpdate("clicked", {"clicked_at": _event_time(event, data, "clicked_at")})
    if kind == "bounced":
        bounce = data.get("bounced") or {}
        return EventUpdate("bounced", {"error_message": f"Bounced: {bounce.get('reason')} ({bounce.get('type')})"})
    if kind == "complained":
        return EventUpdate("bounced", {"error_message": "User marked as spam"})
    if kind == "unsubscribed":
        # Counted in the "clicked" analytics bucket; the preference change
        # itself goes through the unsubscribe token flow.
        return EventUpdate("clicked", {})
    return None


def handle_event(db: Session, event: Dict) -> bool:
    """
    Apply one provider event to its sent-email record.

    Every write only sets fields and the status write is conditional on the
    current status, so replaying an event leaves the record unchanged.
    """
    if not isinstance(event, dict):
        raise ValidationError("Event must be a JSON object")

    event_type = str(event.get("type", ""))
    update = map_event(event)
    if update is None:
        logger.warning("Unhandled webhook event type", event_type=event_type)
        return True

    email_id = event_data(event).get("email_id")
    if not email_id:
        raise ValidationError("Event is missing data.email_id", event_type=event_type)

    try:
        query = db.query(SentEmail).filter(SentEmail.email_id == email_id)
        matched = query.count()
        for name, value in update.fields.items():
            column = getattr(SentEmail, name)
            target = query.filter(column.is_(None)) if name in TIMESTAMP_FIELDS else query
            target.update({column: value}, synchronize_session=False)
        db.query(SentEmail).filter(
            SentEmail.email_id == email_id,
            SentEmail.status.in_(STATUS_PREDECESSORS[update.status]),
        ).update({SentEmail.status: update.status}, synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(
            "Failed to apply webhook event",
            operation="handle_event",
            email_id=email_id,
            event_type=event_type,
            detail=str(e),
        ) from e

    if not matched:
        logger.warning("Webhook event for unknown email", event_type=event_type, email_id=email_id)
    else:
        logger.info("Applied webhook event", event_type=event_type, email_id=email_id)
    return True


def handle_events(db: Session, payload: Union[Dict, List]) -> List[Dict]:
    """Process one event or a list; a failing event never stops the others."""
    events = payload if isinstance(payload, list) else [payload]
    results = []
    for event in events:
        event_type = event.get("type") if isinstance(event, dict) else None
        try:
            handle_event(db, event)
            results.append({"type": event_type, "success": True})
        except (ValidationError, StoreError) as e:
            logger.error("Failed to process webhook event", event_type=event_type, detail=e.message)
            results.append({"type": event_type, "success": False, "error": e.message})
        except Exception as e:
            db.rollback()
            logger.error("Unexpected error processing webhook event", error=e, event_type=event_type)
            results.append({"type": event_type, "success": False, "error": "Failed to process event"})
    return results

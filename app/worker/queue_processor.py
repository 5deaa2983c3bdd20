"""
Delivery Queue Processor

Pulls due queue entries in (priority, scheduled_for) order and hands each to
the transport. Failures are terminal for the entry: they are recorded with an
error message and surfaced through queue stats for follow-up, never
re-queued automatically.

Batch runs may overlap. Each entry is claimed with a conditional
pending -> processing update, so only one processor ever sends it.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..errors import StoreError, ValidationError
from ..logging_config import queue_logger as logger, timed
from ..models.email_queue_entry import EmailQueueEntry, PRIORITY_MARKETING
from ..models.sent_email import SentEmail
from ..services.templates import MARKETING_TYPES, render
from ..services.transport import EmailTransport
from ..services.unsubscribe import build_unsubscribe_url, issue_token

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 500


@dataclass
class BatchResult:
    attempted: int = 0
    sent: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> datetime:
    """Normalize to UTC; naive values are taken as UTC already"""
    if value is None:
        return _utcnow()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def enqueue(
    db: Session,
    email_type: str,
    recipient_email: str,
    subject: str,
    template_id: Optional[str] = None,
    template_data: Optional[Dict[str, Any]] = None,
    user_id: Optional[int] = None,
    priority: int = PRIORITY_MARKETING,
    scheduled_for: Optional[datetime] = None,
) -> EmailQueueEntry:
    """Add one pending email to the queue"""
    entry = EmailQueueEntry(
        email_type=email_type,
        recipient_email=recipient_email,
        user_id=user_id,
        subject=subject,
        template_id=template_id,
        template_data=template_data or {},
        priority=priority,
        status="pending",
        scheduled_for=_as_utc(scheduled_for),
    )
    db.add(entry)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError("Failed to queue email", operation="enqueue", email_type=email_type, detail=str(e)) from e
    db.refresh(entry)
    logger.info("Queued email", entry_id=entry.id, email_type=email_type, priority=priority)
    return entry


def get_queue_stats(db: Session) -> Dict[str, int]:
    """Entry counts per status, plus entries sent in the last 24 hours"""
    counts = dict(
        db.query(EmailQueueEntry.status, func.count(EmailQueueEntry.id))
        .group_by(EmailQueueEntry.status)
        .all()
    )
    sent_today = (
        db.query(func.count(EmailQueueEntry.id))
        .filter(EmailQueueEntry.status == "sent", EmailQueueEntry.sent_at >= _utcnow() - timedelta(hours=24))
        .scalar()
    )
    stats = {status: int(counts.get(status, 0)) for status in EmailQueueEntry.STATUSES}
    stats["sent_today"] = int(sent_today or 0)
    return stats


class QueueProcessor:
    """
    Sends due queue entries through a transport.

    Args:
        db: Session used for claims and outcome writes
        transport: Anything with ``send(to, subject, html) -> {"id": ...}``
    """

    def __init__(self, db: Session, transport: EmailTransport, app_url: Optional[str] = None):
        self.db = db
        self.transport = transport
        self.app_url = app_url or get_settings().app_url

    def due_entries(self, batch_size: int):
        return (
            self.db.query(EmailQueueEntry)
            .filter(EmailQueueEntry.status == "pending", EmailQueueEntry.scheduled_for <= _utcnow())
            .order_by(
                EmailQueueEntry.priority.asc(),
                EmailQueueEntry.scheduled_for.asc(),
                EmailQueueEntry.id.asc(),
            )
            .limit(batch_size)
            .all()
        )

    def claim(self, entry_id: int) -> bool:
        """pending -> processing. False if another processor got there first."""
        rows = (
            self.db.query(EmailQueueEntry)
            .filter(EmailQueueEntry.id == entry_id, EmailQueueEntry.status == "pending")
            .update(
                {EmailQueueEntry.status: "processing", EmailQueueEntry.updated_at: _utcnow()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return rows == 1

    def _template_data(self, entry: EmailQueueEntry) -> Dict[str, Any]:
        data = dict(entry.template_data or {})
        if entry.email_type in MARKETING_TYPES and not data.get("unsubscribe_url"):
            issued = issue_token(self.db, entry.recipient_email, "marketing")
            data["unsubscribe_url"] = build_unsubscribe_url(issued.token, issued.token_type, self.app_url)
        return data

    def _mark_sent(self, entry: EmailQueueEntry, email_id: str) -> None:
        now = _utcnow()
        self.db.query(EmailQueueEntry).filter(EmailQueueEntry.id == entry.id).update(
            {
                EmailQueueEntry.status: "sent",
                EmailQueueEntry.sent_at: now,
                EmailQueueEntry.error_message: None,
                EmailQueueEntry.updated_at: now,
            },
            synchronize_session=False,
        )
        self.db.add(SentEmail(
            email_id=email_id,
            email_type=entry.email_type,
            user_id=entry.user_id,
            recipient_email=entry.recipient_email,
            subject=entry.subject,
            status="sent",
            sent_at=now,
        ))
        self.db.commit()

    def _mark_failed(self, entry_id: int, message: str) -> None:
        self.db.query(EmailQueueEntry).filter(EmailQueueEntry.id == entry_id).update(
            {
                EmailQueueEntry.status: "failed",
                EmailQueueEntry.error_message: message or "Unknown error",
                EmailQueueEntry.updated_at: _utcnow(),
            },
            synchronize_session=False,
        )
        self.db.commit()

    def send_entry(self, entry: EmailQueueEntry) -> bool:
        """Render and send one claimed entry, recording the outcome. True if sent."""
        # Snapshot before any commit expires the instance
        entry_id = entry.id
        log = logger.bind(entry_id=entry_id, email_type=entry.email_type)
        try:
            html = render(entry.template_id or entry.email_type, self._template_data(entry))
            result = self.transport.send(entry.recipient_email, entry.subject, html)
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            self.db.rollback()
            self._mark_failed(entry_id, message)
            log.error("Queued email failed", detail=message)
            return False

        email_id = result["id"]
        try:
            self._mark_sent(entry, email_id)
        except SQLAlchemyError as e:
            # The provider has the message; leave a terminal record saying so
            self.db.rollback()
            log.critical("Sent email could not be recorded", error=e, email_id=email_id)
            self._mark_failed(entry_id, f"Sent as {email_id} but the delivery record could not be saved")
            return False

        log.info("Queued email sent", email_id=email_id)
        return True

    @timed(logger)
    def process_batch(self, batch_size: int = 50) -> BatchResult:
        """
        Process up to ``batch_size`` due entries.

        Returns:
            BatchResult counting attempted, sent and failed entries
        """
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) \
                or not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
            raise ValidationError(f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}")

        result = BatchResult()
        try:
            entries = self.due_entries(batch_size)
        except SQLAlchemyError as e:
            raise StoreError("Failed to fetch queue items", operation="process_batch", detail=str(e)) from e

        for entry in entries:
            if not self.claim(entry.id):
                logger.debug("Entry already claimed", entry_id=entry.id)
                continue

            result.attempted += 1
            entry_id = entry.id
            try:
                sent = self.send_entry(entry)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.critical("Could not record queue outcome", error=e, entry_id=entry_id)
                sent = False
            if sent:
                result.sent += 1
            else:
                result.failed += 1

        logger.info("Processed queue batch", batch_size=batch_size, **result.to_dict())
        return result

"""
Delivery queue routes: cron-triggered batch processing, stats and direct enqueue.
"""
import hmac

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_db
from ..errors import AuthError
from ..models.email_queue_entry import PRIORITY_MARKETING
from ..responses import success
from ..schemas.queue import QueueEnqueueRequest, QueueProcessRequest
from ..services.transport import EmailTransport, get_transport
from ..worker.queue_processor import QueueProcessor, enqueue, get_queue_stats

router = APIRouter(prefix="/api/email/queue", tags=["email-queue"])


def require_queue_key(api_key, settings: Settings) -> None:
    """The caller must present the configured queue secret. No secret configured rejects everyone."""
    expected = settings.email_queue_api_key
    if not expected or not api_key or not hmac.compare_digest(str(api_key), expected):
        raise AuthError("Unauthorized")


@router.post("/process")
def process_queue(
    body: QueueProcessRequest,
    db: Session = Depends(get_db),
    transport: EmailTransport = Depends(get_transport),
    settings: Settings = Depends(get_settings),
):
    """Process one batch of due queue entries"""
    require_queue_key(body.api_key, settings)

    processor = QueueProcessor(db, transport, app_url=settings.app_url)
    result = processor.process_batch(body.batch_size)
    return success(result=result.to_dict(), stats=get_queue_stats(db))


@router.get("/process")
def queue_stats(db: Session = Depends(get_db)):
    """Queue health for monitoring"""
    return success(stats=get_queue_stats(db))


@router.post("", status_code=201)
def enqueue_email(
    body: QueueEnqueueRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Queue a single email for the next batch"""
    require_queue_key(body.api_key, settings)

    entry = enqueue(
        db,
        email_type=body.email_type,
        recipient_email=body.recipient_email,
        subject=body.subject,
        template_id=body.template_id,
        template_data=body.template_data,
        user_id=body.user_id,
        priority=body.priority if body.priority is not None else PRIORITY_MARKETING,
        scheduled_for=body.scheduled_for,
    )
    return success(id=entry.id)

"""
Provider delivery-event webhook routes.
"""
import json

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_db
from ..errors import SignatureError, ValidationError
from ..logging_config import webhook_logger as logger
from ..responses import isoformat, success
from ..services.webhook_reconciler import handle_events, verify_signature

router = APIRouter(prefix="/api/email/webhooks", tags=["email-webhooks"])

SIGNATURE_HEADER = "resend-signature"


@router.post("")
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Verify the signature over the raw body, then apply one event or a batch"""
    raw_body = await request.body()

    if not verify_signature(
        raw_body,
        request.headers.get(SIGNATURE_HEADER),
        settings.resend_webhook_secret,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    ):
        raise SignatureError("Invalid signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Invalid JSON payload")

    results = handle_events(db, payload)
    logger.info(
        "Processed webhook payload",
        processed=len(results),
        failed=sum(1 for r in results if not r["success"]),
    )
    return success(processed=len(results), results=results)


@router.get("")
def webhook_health():
    return {"status": "webhook-active", "timestamp": isoformat()}

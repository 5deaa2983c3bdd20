"""
Order confirmation email: the one transactional send that retries in-request.
"""
from datetime import datetime, timezone
from typing import Callable, Dict

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import StoreError, TransportError, ValidationError
from ..logging_config import get_logger
from ..models.order import Order
from ..models.sent_email import SentEmail
from .retry import send_with_retry
from .templates import render
from .transport import EmailTransport

logger = get_logger("orders")


def is_valid_email(email: str) -> bool:
    """Syntax check only; deliverability is the provider's call"""
    if not email:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def order_template_data(order: Order) -> Dict:
    return {
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "order_number": order.order_number,
        "total": order.total,
        "order_items": order.items or [],
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


def send_order_confirmation(
    db: Session,
    order: Order,
    transport: EmailTransport,
    max_retries: int = 3,
    sleep: Callable[[float], None] = None,
) -> Dict:
    """
    Send the confirmation for ``order``, retrying transport failures.

    On success the order is stamped sent and a ledger row is written so
    delivery webhooks can track it. On exhaustion the order records the
    failure and ``TransportError`` is raised.
    """
    if not is_valid_email(order.customer_email or ""):
        order.email_error = "Invalid email format"
        order.email_sent = False
        db.commit()
        raise ValidationError("Invalid email format", order_id=order.id)

    subject = f"Order Confirmation - {order.order_number}"
    html = render("order_confirmation", order_template_data(order))

    retry_kwargs = {"max_retries": max_retries, "retry_on": (TransportError,)}
    if sleep is not None:
        retry_kwargs["sleep"] = sleep

    try:
        result = send_with_retry(lambda: transport.send(order.customer_email, subject, html), **retry_kwargs)
    except TransportError as e:
        logger.error(
            "Order confirmation failed after retries",
            order_id=order.id,
            order_number=order.order_number,
            detail=e.message,
        )
        order.email_sent = False
        order.email_error = e.message
        db.commit()
        raise

    now = datetime.now(timezone.utc)
    order.email_sent = True
    order.email_sent_at = now
    order.email_error = None
    db.add(SentEmail(
        email_id=result["id"],
        email_type="order_confirmation",
        user_id=order.customer_id,
        recipient_email=order.customer_email,
        subject=subject,
        status="sent",
        sent_at=now,
    ))
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(
            "Failed to record order confirmation",
            operation="send_order_confirmation",
            order_id=order.id,
            detail=str(e),
        ) from e

    logger.info("Order confirmation sent", order_id=order.id, email_id=result["id"])
    return {"emailId": result["id"], "sentAt": now.isoformat()}

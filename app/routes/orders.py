"""
Order confirmation route.
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_db
from ..errors import NotFoundError, TransportError, ValidationError
from ..models.order import Order
from ..responses import success
from ..schemas.orders import OrderConfirmationRequest
from ..services.order_confirmation import send_order_confirmation
from ..services.transport import EmailTransport, get_transport

router = APIRouter(prefix="/api", tags=["orders"])


def _canonical_order_id(order_id) -> Optional[str]:
    """Lowercase hyphenated form, or None if not a UUID"""
    try:
        return str(uuid.UUID(str(order_id)))
    except ValueError:
        return None


@router.post("/send-order-confirmation")
def order_confirmation(
    body: OrderConfirmationRequest,
    db: Session = Depends(get_db),
    transport: EmailTransport = Depends(get_transport),
    settings: Settings = Depends(get_settings),
):
    """Send the confirmation email for an order, retrying transient failures"""
    order_id = _canonical_order_id(body.order_id) if body.order_id else None
    if not order_id:
        raise ValidationError("Invalid order ID")

    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found", order_id=order_id)

    try:
        result = send_order_confirmation(
            db,
            order,
            transport,
            max_retries=settings.order_confirmation_max_retries,
        )
    except TransportError as e:
        raise TransportError("Failed to send email", order_id=order.id, detail=e.message) from e

    return success(**result)

"""
One-click unsubscribe routes.

The GET endpoint is public and answers every bad token with the same
message, so it cannot be used to probe which tokens exist.
"""
import re

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_required_user
from ..database import get_db
from ..errors import NotFoundError, ValidationError
from ..models.customer import Customer
from ..rate_limiter import rate_limit
from ..responses import isoformat, success
from ..services.unsubscribe import TOKEN_TYPES, build_unsubscribe_url, issue_token, process_unsubscribe

router = APIRouter(prefix="/api/email/unsubscribe", tags=["email-unsubscribe"])

TOKEN_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def _check_token_type(token_type: str) -> None:
    if token_type not in TOKEN_TYPES:
        raise ValidationError("Invalid token type", details=list(TOKEN_TYPES))


@router.get("/{token_type}/{token}", dependencies=[Depends(rate_limit("unsubscribe"))])
def unsubscribe(token_type: str, token: str, response: Response, db: Session = Depends(get_db)):
    """Consume an unsubscribe token and apply its preference change"""
    _check_token_type(token_type)
    if not TOKEN_PATTERN.match(token):
        raise ValidationError("Invalid token format")

    result = process_unsubscribe(db, token)
    if not result.success:
        response.status_code = 400
    return result.to_dict()


@router.post("/{token_type}/{token}", dependencies=[Depends(rate_limit("unsubscribe-issue"))])
def issue_unsubscribe_link(
    token_type: str,
    token: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_required_user),
):
    """
    Issue a fresh unsubscribe link for the caller's own address.

    The path token is ignored; only the type is used.
    """
    _check_token_type(token_type)

    customer = db.query(Customer).filter(Customer.id == current_user.id).first()
    if not customer:
        raise NotFoundError("Customer profile not found", customer_id=current_user.id)

    issued = issue_token(db, customer.email, token_type)
    return success(
        token=issued.token,
        tokenType=issued.token_type,
        unsubscribeUrl=build_unsubscribe_url(issued.token, issued.token_type),
        expiresAt=isoformat(issued.expires_at),
    )

"""
Unsubscribe token lifecycle: issue, validate, consume, sweep.

A token is valid while ``used_at`` is NULL and ``expires_at`` is in the
future. Single use is enforced by the store through a conditional update, not
by anything held in this process.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..errors import StoreError, TokenGenerationFailed, ValidationError
from ..logging_config import get_logger
from ..models.unsubscribe_token import UnsubscribeToken
from .preferences import set_preferences_by_email

logger = get_logger("unsubscribe")

TOKEN_TYPES = UnsubscribeToken.TOKEN_TYPES
MAX_ISSUE_ATTEMPTS = 3

INVALID_TOKEN_MESSAGE = "Invalid or expired unsubscribe link. Please request a new one."
UPDATE_FAILED_MESSAGE = "Failed to update preferences. Please try again or contact support."

# Preferences written when a token of each type is consumed. "all" also turns
# off order updates and "transactional" turns the marketing categories on;
# both are long-standing product behaviour kept as-is, see DESIGN.md.
UNSUBSCRIBE_PREFERENCES: Dict[str, Dict[str, bool]] = {
    "marketing": {"order_updates": True, "new_products": False, "sales": False, "blog": False},
    "all": {"order_updates": False, "new_products": False, "sales": False, "blog": False},
    "transactional": {"order_updates": False, "new_products": True, "sales": True, "blog": True},
}

UNSUBSCRIBE_MESSAGES = {
    "marketing": "You have been unsubscribed from marketing emails. You will still receive order updates.",
    "all": "You have been unsubscribed from all emails. Note: You will no longer receive order updates.",
    "transactional": "You have been unsubscribed from order-related emails.",
}


@dataclass
class TokenData:
    email: str
    token_type: str


@dataclass
class IssuedToken:
    token: str
    token_type: str
    expires_at: datetime


@dataclass
class UnsubscribeResult:
    success: bool
    message: str
    updated_preferences: Optional[Dict[str, bool]] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {"success": self.success, "message": self.message}
        if self.updated_preferences is not None:
            data["updatedPreferences"] = self.updated_preferences
        if self.error_code:
            data["error_code"] = self.error_code
        return data


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_token() -> str:
    # uuid4 draws from os.urandom: 122 random bits, and the shape the public route accepts
    return str(uuid.uuid4())


def build_unsubscribe_url(token: str, token_type: str, base_url: Optional[str] = None) -> str:
    base = (base_url or get_settings().app_url).rstrip("/")
    return f"{base}/api/email/unsubscribe/{token_type}/{token}"


def issue_token(db: Session, email: str, token_type: str = "marketing", ttl_days: Optional[int] = None) -> IssuedToken:
    """Create and store a fresh single-use token for ``email``."""
    if token_type not in TOKEN_TYPES:
        raise ValidationError(f"Invalid token type: {token_type}")

    ttl = ttl_days if ttl_days is not None else get_settings().unsubscribe_token_ttl_days
    expires_at = _utcnow() + timedelta(days=ttl)

    for attempt in range(MAX_ISSUE_ATTEMPTS):
        token = _new_token()
        db.add(UnsubscribeToken(email=email, token=token, token_type=token_type, expires_at=expires_at))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning("Unsubscribe token collision, retrying", attempt=attempt + 1)
            continue
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to store unsubscribe token", error=e, email=email)
            raise TokenGenerationFailed("Failed to generate unsubscribe token", operation="issue_token") from e
        return IssuedToken(token=token, token_type=token_type, expires_at=expires_at)

    raise TokenGenerationFailed("Failed to generate unsubscribe token", operation="issue_token")


def _valid_token_query(db: Session, token: str):
    return db.query(UnsubscribeToken).filter(
        UnsubscribeToken.token == token,
        UnsubscribeToken.used_at.is_(None),
        UnsubscribeToken.expires_at > _utcnow(),
    )


def validate_token(db: Session, token: str) -> Optional[TokenData]:
    """
    The token's email and type, or None.

    Unknown, expired and already-used tokens all return None so callers
    cannot tell them apart.
    """
    record = _valid_token_query(db, token).first()
    if not record:
        return None
    return TokenData(email=record.email, token_type=record.token_type)


def _claim(db: Session, token: str) -> bool:
    rows = _valid_token_query(db, token).update(
        {UnsubscribeToken.used_at: _utcnow()}, synchronize_session=False
    )
    return rows == 1


def consume_token(db: Session, token: str) -> bool:
    """
    Mark ``token`` used. Returns False when it was not valid any more,
    including when a concurrent request consumed it first.
    """
    try:
        claimed = _claim(db, token)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError("Failed to consume unsubscribe token", operation="consume_token", detail=str(e)) from e
    return claimed


def sweep_expired(db: Session) -> int:
    """Delete every token past its expiry. Returns the number removed."""
    try:
        removed = (
            db.query(UnsubscribeToken)
            .filter(UnsubscribeToken.expires_at < _utcnow())
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError("Failed to sweep unsubscribe tokens", operation="sweep_expired", detail=str(e)) from e
    logger.info("Swept expired unsubscribe tokens", removed=removed)
    return removed


def process_unsubscribe(db: Session, token: str) -> UnsubscribeResult:
    """
    Validate and consume ``token`` and apply its preference change.

    Consumption and the preference write commit together, so a failed write
    leaves the token usable for a retry.
    """
    token_data = validate_token(db, token)
    if not token_data or token_data.token_type not in UNSUBSCRIBE_PREFERENCES:
        return UnsubscribeResult(success=False, message=INVALID_TOKEN_MESSAGE, error_code="INVALID_TOKEN")

    updated = dict(UNSUBSCRIBE_PREFERENCES[token_data.token_type])
    try:
        if not _claim(db, token):
            db.rollback()
            return UnsubscribeResult(success=False, message=INVALID_TOKEN_MESSAGE, error_code="INVALID_TOKEN")
        set_preferences_by_email(db, token_data.email, updated)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to apply unsubscribe",
            error=e,
            email=token_data.email,
            token_type=token_data.token_type,
        )
        return UnsubscribeResult(success=False, message=UPDATE_FAILED_MESSAGE, error_code="UPDATE_FAILED")

    logger.info("Processed unsubscribe", email=token_data.email, token_type=token_data.token_type)
    return UnsubscribeResult(
        success=True,
        message=UNSUBSCRIBE_MESSAGES[token_data.token_type],
        updated_preferences=updated,
    )

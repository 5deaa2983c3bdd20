"""
Delivery metrics derived from the sent-email ledger. Read-only.

Status only moves forward along sent -> delivered -> opened -> clicked, so a
message currently "clicked" was also delivered and opened. Counts are
cumulative along that funnel.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ..models.sent_email import SentEmail

DELIVERED_STATUSES = ("delivered", "opened", "clicked")
OPENED_STATUSES = ("opened", "clicked")


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _since(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def _funnel_columns():
    return (
        func.count(SentEmail.id),
        func.sum(case((SentEmail.status.in_(DELIVERED_STATUSES), 1), else_=0)),
        func.sum(case((SentEmail.status.in_(OPENED_STATUSES), 1), else_=0)),
        func.sum(case((SentEmail.status == "clicked", 1), else_=0)),
        func.sum(case((SentEmail.status == "bounced", 1), else_=0)),
    )


def overall_metrics(db: Session, days: int = 30) -> Dict:
    sent, delivered, opened, clicked, bounced = (
        db.query(*_funnel_columns()).filter(SentEmail.sent_at >= _since(days)).one()
    )
    sent, delivered, opened, clicked, bounced = (int(v or 0) for v in (sent, delivered, opened, clicked, bounced))

    return {
        "totalSent": sent,
        "totalDelivered": delivered,
        "totalOpened": opened,
        "totalClicked": clicked,
        "totalBounced": bounced,
        "deliveryRate": _rate(delivered, sent),
        "openRate": _rate(opened, delivered),
        "clickRate": _rate(clicked, opened),
        "bounceRate": _rate(bounced, sent),
    }


def metrics_by_type(db: Session, days: int = 30) -> List[Dict]:
    rows = (
        db.query(SentEmail.email_type, *_funnel_columns())
        .filter(SentEmail.sent_at >= _since(days))
        .group_by(SentEmail.email_type)
        .order_by(SentEmail.email_type)
        .all()
    )

    metrics = []
    for email_type, sent, _delivered, opened, clicked, _bounced in rows:
        sent, opened, clicked = int(sent or 0), int(opened or 0), int(clicked or 0)
        metrics.append({
            "email_type": email_type,
            "sent": sent,
            "opened": opened,
            "clicked": clicked,
            "openRate": _rate(opened, sent),
            "clickRate": _rate(clicked, opened),
        })
    return metrics


def recent_performance(db: Session, limit: int = 50) -> List[Dict]:
    emails = db.query(SentEmail).order_by(SentEmail.sent_at.desc(), SentEmail.id.desc()).limit(limit).all()
    return [
        {
            "emailId": email.email_id,
            "emailType": email.email_type,
            "subject": email.subject,
            "status": email.status,
            "sentAt": email.sent_at.isoformat() if email.sent_at else None,
            "deliveredAt": email.delivered_at.isoformat() if email.delivered_at else None,
            "openedAt": email.opened_at.isoformat() if email.opened_at else None,
            "clickedAt": email.clicked_at.isoformat() if email.clicked_at else None,
        }
        for email in emails
    ]


def user_metrics(db: Session, user_id: int) -> Dict:
    sent, _delivered, opened, clicked, _bounced = (
        db.query(*_funnel_columns()).filter(SentEmail.user_id == user_id).one()
    )
    sent, opened, clicked = int(sent or 0), int(opened or 0), int(clicked or 0)
    return {
        "totalSent": sent,
        "totalOpened": opened,
        "totalClicked": clicked,
        "openRate": _rate(opened, sent),
        "clickRate": _rate(clicked, opened),
    }

"""
Tests for webhook signature verification and status reconciliation.
"""
import json
import time
from datetime import datetime, timezone

import pytest

from app.errors import ValidationError
from app.models.sent_email import SentEmail
from app.services import webhook_reconciler
from app.services.webhook_reconciler import handle_event, handle_events, map_event, sign_payload, verify_signature
from conftest import WEBHOOK_SECRET


def record(db, email_id="em_1", status="sent"):
    row = SentEmail(
        email_id=email_id,
        email_type="newsletter",
        recipient_email="alice@example.com",
        subject="Hello",
        status=status,
        sent_at=datetime.now(timezone.utc),
    )
    db.add(row)
    db.commit()
    return row


def event(kind, email_id="em_1", **data):
    return {"type": f"email.{kind}", "created_at": "2026-03-01T12:00:00Z", "data": dict(email_id=email_id, **data)}


def fetch(db, email_id="em_1"):
    db.expire_all()
    return db.query(SentEmail).filter(SentEmail.email_id == email_id).one()


class TestSignature:
    """Test signature verification."""

    def test_valid_signature(self):
        body = b'{"type":"email.delivered"}'
        assert verify_signature(body, sign_payload(body, "secret"), "secret") is True

    def test_tampered_body(self):
        header = sign_payload(b'{"a":1}', "secret")
        assert verify_signature(b'{"a":2}', header, "secret") is False

    def test_stale_timestamp(self):
        body = b"{}"
        header = sign_payload(body, "secret", timestamp=int(time.time()) - 901)
        assert verify_signature(body, header, "secret") is False

    @pytest.mark.parametrize("header", [None, "", "v1=abc", "t=notanumber,v1=abc", "garbage"])
    def test_missing_or_malformed_header(self, header):
        assert verify_signature(b"{}", header, "secret") is False

    def test_no_secret_skips_verification(self):
        assert verify_signature(b"{}", None, None) is True


class TestEventMapping:
    """Test event type to ledger update mapping."""

    def test_bounce_message(self):
        update = map_event(event("bounced", bounced={"reason": "mailbox full", "type": "soft"}))
        assert update.status == "bounced"
        assert update.fields == {"error_message": "Bounced: mailbox full (soft)"}

    def test_complaint(self):
        update = map_event(event("complained"))
        assert update.status == "bounced"
        assert update.fields == {"error_message": "User marked as spam"}

    def test_delivery_delayed_counts_as_delivered(self):
        assert map_event(event("delivery_delayed")).status == "delivered"

    def test_unknown_type(self):
        assert map_event({"type": "email.sent", "data": {"email_id": "em_1"}}) is None


class TestReconciliation:
    """Test applying events to sent-email records."""

    def test_delivered(self, db):
        record(db)

        handle_event(db, event("delivered"))

        row = fetch(db)
        assert row.status == "delivered"
        assert row.delivered_at == datetime(2026, 3, 1, 12, 0)

    def test_replay_is_idempotent(self, db):
        record(db)

        handle_event(db, event("opened"))
        first = fetch(db)
        snapshot = (first.status, first.opened_at)
        handle_event(db, event("opened"))
        second = fetch(db)

        assert (second.status, second.opened_at) == snapshot == ("opened", datetime(2026, 3, 1, 12, 0))

    def test_late_delivered_does_not_regress_clicked(self, db):
        record(db)

        handle_event(db, event("clicked"))
        handle_event(db, event("delivered"))

        row = fetch(db)
        assert row.status == "clicked"
        assert row.delivered_at is not None

    def test_unknown_email_id_is_noop(self, db):
        assert handle_event(db, event("delivered", email_id="em_missing")) is True
        assert db.query(SentEmail).count() == 0

    def test_missing_email_id(self, db):
        with pytest.raises(ValidationError):
            handle_event(db, {"type": "email.delivered", "data": {}})

    def test_non_object_data_rejected(self, db):
        with pytest.raises(ValidationError):
            handle_event(db, {"type": "email.delivered", "data": "oops"})

    def test_replay_without_timestamps_keeps_first_time(self, db):
        record(db)
        undated = {"type": "email.delivered", "data": {"email_id": "em_1"}}

        handle_event(db, undated)
        first = fetch(db).delivered_at
        handle_event(db, undated)

        assert first is not None
        assert fetch(db).delivered_at == first

    def test_later_event_time_does_not_overwrite(self, db):
        record(db)

        handle_event(db, event("opened"))
        handle_event(db, {"type": "email.opened", "created_at": "2026-03-02T09:00:00Z", "data": {"email_id": "em_1"}})

        assert fetch(db).opened_at == datetime(2026, 3, 1, 12, 0)

    def test_batch_continues_after_malformed_event(self, db):
        record(db)

        results = handle_events(db, [{"type": "email.delivered", "data": "oops"}, event("delivered")])

        assert [r["success"] for r in results] == [False, True]
        assert fetch(db).status == "delivered"

    def test_batch_continues_after_unexpected_error(self, db, monkeypatch):
        record(db, "em_1")
        record(db, "em_2")
        original = webhook_reconciler.map_event

        def flaky(evt):
            if evt["data"]["email_id"] == "em_1":
                raise RuntimeError("boom")
            return original(evt)

        monkeypatch.setattr(webhook_reconciler, "map_event", flaky)

        results = handle_events(db, [event("delivered", "em_1"), event("delivered", "em_2")])

        assert results[0] == {"type": "email.delivered", "success": False, "error": "Failed to process event"}
        assert results[1]["success"] is True
        assert fetch(db, "em_1").status == "sent"
        assert fetch(db, "em_2").status == "delivered"


class TestWebhookEndpoint:
    """Test the webhook route."""

    def _post(self, client, payload, secret=WEBHOOK_SECRET, header=None):
        body = json.dumps(payload).encode()
        headers = {"Content-Type": "application/json"}
        headers["resend-signature"] = header if header is not None else sign_payload(body, secret)
        return client.post("/api/email/webhooks", content=body, headers=headers)

    def test_signed_batch(self, client, db, settings):
        record(db, "em_1")
        record(db, "em_2")

        response = self._post(client, [event("delivered", "em_1"), event("opened", "em_2"), {"type": "email.clicked", "data": {}}])

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 3
        assert [r["success"] for r in data["results"]] == [True, True, False]
        assert fetch(db, "em_1").status == "delivered"
        assert fetch(db, "em_2").status == "opened"

    def test_malformed_event_does_not_abort_batch(self, client, db, settings):
        record(db)

        response = self._post(client, [{"type": "email.delivered", "data": "oops"}, event("delivered")])

        assert response.status_code == 200
        assert [r["success"] for r in response.json()["results"]] == [False, True]
        assert fetch(db).status == "delivered"

    def test_invalid_signature_mutates_nothing(self, client, db, settings):
        record(db)

        response = self._post(client, event("delivered"), secret="wrong-secret")

        assert response.status_code == 401
        assert fetch(db).status == "sent"

    def test_invalid_json(self, client, db, settings):
        body = b"not json"
        response = client.post(
            "/api/email/webhooks",
            content=body,
            headers={"resend-signature": sign_payload(body, WEBHOOK_SECRET)},
        )
        assert response.status_code == 400

    def test_health(self, client):
        response = client.get("/api/email/webhooks")
        assert response.status_code == 200
        assert response.json()["status"] == "webhook-active"

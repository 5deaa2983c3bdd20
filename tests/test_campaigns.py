"""
Tests for the campaign scheduler and campaign endpoints.
"""
import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.errors import EmptyAudienceError, InvalidStateError, NotFoundError, StoreError
from app.models.email_campaign import EmailCampaign
from app.models.email_queue_entry import EmailQueueEntry, PRIORITY_MARKETING
from app.worker.scheduler import CampaignParams, CampaignScheduler

SPRING_SALE = {
    "name": "Spring Sale",
    "email_type": "sales",
    "subject": "20% Off",
    "scheduled_for": "2026-04-01T09:00:00Z",
    "segment_criteria": {"sales": True},
    "template_data": {"discount_code": "SPRING20"},
}


def create(db, **overrides):
    params = dict(SPRING_SALE, **overrides)
    return CampaignScheduler(db).create(CampaignParams(**params))


class TestCampaignScheduler:
    """Test the campaign state machine directly."""

    def test_create_is_draft_with_estimate(self, db, customers):
        campaign = create(db)

        assert campaign.status == "draft"
        assert campaign.recipient_count == 2

    def test_launch_queues_one_entry_per_recipient(self, db, customers):
        campaign = create(db)

        result = CampaignScheduler(db).launch(campaign.id)

        assert result.queued_count == 2
        db.expire_all()
        campaign = db.get(EmailCampaign, campaign.id)
        assert campaign.status == "sent"
        assert campaign.recipient_count == 2
        assert campaign.sent_at is not None

        entries = db.query(EmailQueueEntry).all()
        assert {e.recipient_email for e in entries} == {"alice@example.com", "carol@example.com"}
        assert all(e.status == "pending" and e.priority == PRIORITY_MARKETING for e in entries)
        assert all(e.template_data == {"discount_code": "SPRING20"} for e in entries)

    def test_launch_empty_audience_leaves_campaign_untouched(self, db, customers):
        campaign = create(db, segment_criteria={"sales": False})

        with pytest.raises(EmptyAudienceError):
            CampaignScheduler(db).launch(campaign.id)

        db.expire_all()
        assert db.get(EmailCampaign, campaign.id).status == "draft"
        assert db.query(EmailQueueEntry).count() == 0

    def test_failed_queue_insert_leaves_campaign_untouched(self, db, customers, monkeypatch):
        campaign = create(db)

        def failing_flush(*args, **kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(db, "flush", failing_flush)
        with pytest.raises(StoreError):
            CampaignScheduler(db).launch(campaign.id)
        monkeypatch.undo()

        db.expire_all()
        stored = db.get(EmailCampaign, campaign.id)
        assert stored.status == "draft"
        assert stored.sent_at is None
        assert db.query(EmailQueueEntry).count() == 0

    def test_sent_campaign_cannot_relaunch(self, db, customers):
        campaign = create(db)
        scheduler = CampaignScheduler(db)
        scheduler.launch(campaign.id)

        with pytest.raises(InvalidStateError):
            scheduler.launch(campaign.id)
        assert db.query(EmailQueueEntry).count() == 2

    def test_schedule_then_launch(self, db, customers):
        campaign = create(db)
        scheduler = CampaignScheduler(db)

        assert scheduler.schedule(campaign.id).status == "scheduled"
        with pytest.raises(InvalidStateError):
            scheduler.schedule(campaign.id)
        assert scheduler.launch(campaign.id).queued_count == 2

    def test_cancel(self, db, customers):
        campaign = create(db)
        scheduler = CampaignScheduler(db)

        assert scheduler.cancel(campaign.id) is True
        assert scheduler.cancel(campaign.id) is False
        with pytest.raises(InvalidStateError):
            scheduler.launch(campaign.id)

    def test_unknown_campaign(self, db):
        with pytest.raises(NotFoundError):
            CampaignScheduler(db).launch(999)

    def test_list_orders_by_scheduled_time(self, db, customers):
        later = create(db, name="Later", scheduled_for="2026-06-01T00:00:00Z")
        sooner = create(db, name="Sooner", scheduled_for="2026-05-01T00:00:00Z")

        assert [c.id for c in CampaignScheduler(db).list_campaigns()] == [sooner.id, later.id]


class TestCampaignEndpoints:
    """Test campaign routes."""

    def test_create_list_launch(self, client, customers):
        response = client.post("/api/email/campaigns", json=SPRING_SALE)
        assert response.status_code == 201
        campaign_id = response.json()["id"]

        response = client.get("/api/email/campaigns", params={"status": "draft"})
        assert response.status_code == 200
        assert campaign_id in [c["id"] for c in response.json()["campaigns"]]

        response = client.post(f"/api/email/campaigns/{campaign_id}/launch")
        assert response.status_code == 200
        assert response.json() == {"success": True, "queuedCount": 2}

        response = client.get(f"/api/email/campaigns/{campaign_id}")
        assert response.json()["campaign"]["status"] == "sent"

    def test_create_missing_fields(self, client, db):
        response = client.post("/api/email/campaigns", json={"name": "No subject"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: name, email_type, subject, scheduled_for"

    def test_create_invalid_date(self, client, db):
        response = client.post("/api/email/campaigns", json=dict(SPRING_SALE, scheduled_for="next tuesday"))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid scheduled_for date"

    def test_create_invalid_segment(self, client, db):
        response = client.post("/api/email/campaigns", json=dict(SPRING_SALE, segment_criteria={"vip": True}))

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_SEGMENT"

    def test_launch_empty_audience(self, client, db, customers):
        campaign = create(db, segment_criteria={"sales": False})

        response = client.post(f"/api/email/campaigns/{campaign.id}/launch")

        assert response.status_code == 400
        assert response.json()["error"] == "No recipients found for this segment"

    def test_cancel_endpoint(self, client, db, customers):
        campaign = create(db)

        assert client.post(f"/api/email/campaigns/{campaign.id}/cancel").status_code == 200
        assert client.post(f"/api/email/campaigns/{campaign.id}/cancel").status_code == 400

    def test_schedule_endpoint(self, client, db, customers):
        campaign = create(db)

        response = client.post(f"/api/email/campaigns/{campaign.id}/schedule")

        assert response.status_code == 200
        assert response.json()["campaign"]["status"] == "scheduled"

    def test_unknown_campaign_404(self, client, db):
        assert client.get("/api/email/campaigns/404").status_code == 404
        assert client.post("/api/email/campaigns/404/launch").status_code == 404

    def test_invalid_status_filter(self, client, db):
        assert client.get("/api/email/campaigns", params={"status": "archived"}).status_code == 400

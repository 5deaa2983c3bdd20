"""
Tests for unsubscribe tokens and the unsubscribe endpoints.
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.errors import ValidationError
from app.models.customer import Customer
from app.models.unsubscribe_token import UnsubscribeToken
from app.services import unsubscribe
from app.services.unsubscribe import (
    build_unsubscribe_url,
    consume_token,
    issue_token,
    process_unsubscribe,
    sweep_expired,
    validate_token,
)
from conftest import make_token


class TestUnsubscribeTokens:
    """Test the token service."""

    def test_issue_and_validate(self, db):
        issued = issue_token(db, "alice@example.com", "all")

        data = validate_token(db, issued.token)
        assert data.email == "alice@example.com"
        assert data.token_type == "all"

    def test_issue_rejects_unknown_type(self, db):
        with pytest.raises(ValidationError):
            issue_token(db, "alice@example.com", "everything")

    def test_consume_is_single_use(self, db):
        issued = issue_token(db, "alice@example.com")

        assert consume_token(db, issued.token) is True
        assert consume_token(db, issued.token) is False
        assert validate_token(db, issued.token) is None

    def test_expired_token_is_invalid(self, db):
        token = make_token(db, "alice@example.com", expires_in=timedelta(minutes=-1))

        assert validate_token(db, token) is None
        assert consume_token(db, token) is False

    def test_unknown_token_is_invalid(self, db):
        assert validate_token(db, "11111111-1111-4111-8111-111111111111") is None

    def test_sweep_removes_only_expired(self, db):
        make_token(db, "a@example.com", token="aaaaaaaa-0000-4000-8000-000000000001", expires_in=timedelta(days=-1))
        make_token(db, "b@example.com", token="aaaaaaaa-0000-4000-8000-000000000002")

        assert sweep_expired(db) == 1
        assert db.query(UnsubscribeToken).count() == 1

    def test_build_url(self):
        url = build_unsubscribe_url("abc", "marketing", base_url="https://shop.example.com/")
        assert url == "https://shop.example.com/api/email/unsubscribe/marketing/abc"


class TestProcessUnsubscribe:
    """Test the preference change each token type applies."""

    @pytest.mark.parametrize("token_type,expected", [
        ("marketing", {"order_updates": True, "new_products": False, "sales": False, "blog": False}),
        ("all", {"order_updates": False, "new_products": False, "sales": False, "blog": False}),
        ("transactional", {"order_updates": False, "new_products": True, "sales": True, "blog": True}),
    ])
    def test_applies_preferences(self, db, customers, token_type, expected):
        token = make_token(db, "carol@example.com", token_type=token_type)

        result = process_unsubscribe(db, token)

        assert result.success is True
        assert result.updated_preferences == expected
        db.expire_all()
        assert db.query(Customer).filter(Customer.email == "carol@example.com").one().email_preferences == expected

    def test_second_use_fails(self, db, customers):
        token = make_token(db, "carol@example.com")

        assert process_unsubscribe(db, token).success is True
        second = process_unsubscribe(db, token)
        assert second.success is False
        assert second.error_code == "INVALID_TOKEN"

    def test_failed_preference_write_keeps_token_usable(self, db, customers, monkeypatch):
        token = make_token(db, "carol@example.com")

        def failing_write(*args, **kwargs):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(unsubscribe, "set_preferences_by_email", failing_write)
        result = process_unsubscribe(db, token)
        monkeypatch.undo()

        assert result.success is False
        assert result.error_code == "UPDATE_FAILED"
        db.expire_all()
        assert validate_token(db, token) is not None
        assert db.query(UnsubscribeToken).filter(UnsubscribeToken.token == token).one().used_at is None
        assert db.query(Customer).filter(Customer.email == "carol@example.com").one().email_preferences["sales"] is True

        assert process_unsubscribe(db, token).success is True


class TestUnsubscribeEndpoints:
    """Test the unsubscribe routes."""

    def test_marketing_unsubscribe(self, client, db, customers):
        token = make_token(db, "alice@example.com")

        response = client.get(f"/api/email/unsubscribe/marketing/{token}")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["updatedPreferences"] == {
            "order_updates": True, "new_products": False, "sales": False, "blog": False,
        }
        db.expire_all()
        alice = db.query(Customer).filter(Customer.email == "alice@example.com").one()
        assert alice.email_preferences["sales"] is False

    def test_used_token_gets_generic_message(self, client, db, customers):
        token = make_token(db, "alice@example.com", used=True)

        response = client.get(f"/api/email/unsubscribe/marketing/{token}")

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "Invalid or expired" in response.json()["message"]

    def test_invalid_token_type(self, client, db):
        response = client.get("/api/email/unsubscribe/weekly/8f14e45f-ceea-4e67-a1b2-3c4d5e6f7a8b")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid token type"

    def test_invalid_token_format(self, client, db):
        response = client.get("/api/email/unsubscribe/marketing/not-a-token")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid token format"

    def test_issue_link_requires_auth(self, client, db):
        response = client.post("/api/email/unsubscribe/marketing/8f14e45f-ceea-4e67-a1b2-3c4d5e6f7a8b")
        assert response.status_code == 401

    def test_issue_link_for_own_address(self, client, db, auth_headers):
        response = client.post(
            "/api/email/unsubscribe/all/8f14e45f-ceea-4e67-a1b2-3c4d5e6f7a8b",
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["tokenType"] == "all"
        assert data["unsubscribeUrl"].endswith(f"/api/email/unsubscribe/all/{data['token']}")
        assert validate_token(db, data["token"]).email == "alice@example.com"

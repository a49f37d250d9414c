"""Tests for alert persistence and delivery."""

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
from jsonschema import ValidationError, validate

from listingwatch.config import settings
from listingwatch.models import Alert, MonitoredItem
from listingwatch.services.alert_service import AlertService
from listingwatch.services.change_detector import AlertDraft
from listingwatch.services.notification_service import (
    NotificationService,
    build_webhook_payload,
    is_valid_webhook_url,
)

from conftest import RecordingNotifier

WEBHOOK_SCHEMA = {
    "type": "object",
    "required": ["alert", "item", "sent_at"],
    "properties": {
        "alert": {
            "type": "object",
            "required": ["id", "type", "source", "message", "severity", "created_at"],
            "properties": {
                "id": {"type": "string"},
                "type": {
                    "enum": [
                        "price_increase", "price_decrease", "out_of_stock",
                        "back_in_stock", "supplier_unavailable", "competitor_price",
                    ]
                },
                "source": {"enum": ["marketplace", "supplier", "competitor"]},
                "message": {"type": "string"},
                "severity": {"enum": ["low", "medium", "high", "critical"]},
                "old_value": {"type": ["object", "null"]},
                "new_value": {"type": ["object", "null"]},
                "created_at": {"type": ["string", "null"]},
            },
        },
        "item": {
            "type": "object",
            "required": ["id", "title", "marketplace_item_id", "url"],
            "properties": {
                "id": {"type": "string"},
                "title": {"type": "string"},
                "marketplace_item_id": {"type": "string"},
                "url": {"type": "string"},
                "supplier_url": {"type": ["string", "null"]},
            },
        },
        "sent_at": {"type": "string"},
    },
}


def make_item() -> MonitoredItem:
    return MonitoredItem(
        id=uuid.uuid4(),
        tenant_id="tenant-a",
        marketplace_item_id="256123456789",
        url="https://www.ebay.co.uk/itm/256123456789",
        title="Haribo Starmix 160g",
        marketplace_price=Decimal("1.99"),
        supplier_url=None,
    )


def make_alert(item: MonitoredItem) -> Alert:
    return Alert(
        id=uuid.uuid4(),
        item_id=item.id,
        tenant_id=item.tenant_id,
        type="price_increase",
        source="marketplace",
        old_value={"price": "1.99"},
        new_value={"price": "2.49", "percent_change": 25.13},
        message="Listing price increased from £1.99 to £2.49 (+25.1%)",
        severity="high",
        created_at=datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc),
    )


# ============================================================================
# TESTS: WEBHOOK PAYLOAD
# ============================================================================

class TestWebhookPayload:
    """Schema validation for the webhook body."""

    def test_payload_matches_schema(self):
        item = make_item()
        payload = build_webhook_payload(make_alert(item), item)

        validate(instance=payload, schema=WEBHOOK_SCHEMA)
        assert payload["alert"]["created_at"] == "2026-01-05T12:00:00+00:00"
        assert payload["item"]["id"] == str(item.id)
        json.dumps(payload)

    def test_schema_rejects_unknown_severity(self):
        item = make_item()
        payload = build_webhook_payload(make_alert(item), item)
        payload["alert"]["severity"] = "urgent"

        with pytest.raises(ValidationError):
            validate(instance=payload, schema=WEBHOOK_SCHEMA)

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://hooks.example.com/alerts", True),
            ("http://localhost:8080/hook", True),
            ("ftp://example.com/hook", False),
            ("not a url", False),
            ("", False),
            (None, False),
        ],
    )
    def test_webhook_url_validation(self, url, expected):
        assert is_valid_webhook_url(url) is expected


# ============================================================================
# TESTS: NOTIFICATION SERVICE
# ============================================================================

class TestNotificationService:
    """Tests for NotificationService delivery channels."""

    async def test_webhook_posts_json(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(204)

        service = NotificationService(transport=httpx.MockTransport(handler))
        item = make_item()

        assert await service.send_alert_webhook("https://hooks.example.com/a", make_alert(item), item) is True
        validate(instance=received[0], schema=WEBHOOK_SCHEMA)

    async def test_webhook_failure_returns_false(self):
        service = NotificationService(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        item = make_item()

        assert await service.send_alert_webhook("https://hooks.example.com/a", make_alert(item), item) is False

    async def test_invalid_webhook_url_not_called(self):
        calls = []
        service = NotificationService(
            transport=httpx.MockTransport(lambda request: calls.append(request) or httpx.Response(200))
        )
        item = make_item()

        assert await service.send_alert_webhook("javascript:alert(1)", make_alert(item), item) is False
        assert calls == []

    async def test_email_skipped_without_smtp(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "")
        item = make_item()

        assert await NotificationService().send_alert_email("me@example.com", make_alert(item), item) is False

    async def test_email_sent_via_smtp(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
        sent = []
        service = NotificationService()
        monkeypatch.setattr(service, "_send_smtp", lambda message: sent.append(message))
        item = make_item()

        assert await service.send_alert_email("me@example.com", make_alert(item), item) is True
        assert sent[0]["To"] == "me@example.com"
        assert sent[0]["Subject"].startswith("[HIGH] Price increase")

    async def test_email_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
        service = NotificationService()

        def refuse(message):
            raise ConnectionRefusedError("no smtp server")

        monkeypatch.setattr(service, "_send_smtp", refuse)
        item = make_item()

        assert await service.send_alert_email("me@example.com", make_alert(item), item) is False


# ============================================================================
# TESTS: ALERT SERVICE
# ============================================================================

class TestAlertService:
    """Tests for AlertService persist-then-notify."""

    async def test_emit_persists_and_emails(self, repository, sample_item, tenant_settings):
        tenant_settings.email_alerts = True
        tenant_settings.email_address = "seller@example.com"
        tenant_settings.webhook_url = "https://hooks.example.com/a"
        notifier = RecordingNotifier()
        service = AlertService(repository, notifier)
        draft = AlertDraft(
            type="out_of_stock",
            source="marketplace",
            message="Listing is now out of stock",
            severity="high",
            old_value={"stock_state": "in_stock"},
            new_value={"stock_state": "out_of_stock"},
        )

        alert = await service.emit(sample_item, draft, tenant_settings)

        stored = await repository.list_alerts("tenant-a")
        assert len(stored) == 1
        assert stored[0].id == alert.id
        assert stored[0].type == "out_of_stock"
        assert stored[0].read is False
        assert stored[0].email_sent is True
        assert notifier.emails[0]["address"] == "seller@example.com"
        assert notifier.webhooks[0]["url"] == "https://hooks.example.com/a"

    async def test_email_not_marked_when_delivery_fails(self, repository, sample_item, tenant_settings):
        tenant_settings.email_alerts = True
        tenant_settings.email_address = "seller@example.com"
        service = AlertService(repository, RecordingNotifier(email_result=False))
        draft = AlertDraft(type="back_in_stock", source="supplier", message="back", severity="medium")

        await service.emit(sample_item, draft, tenant_settings)

        stored = await repository.list_alerts("tenant-a")
        assert stored[0].email_sent is False

    async def test_notifier_errors_are_swallowed(self, repository, sample_item, tenant_settings):
        tenant_settings.webhook_url = "https://hooks.example.com/a"

        class BrokenNotifier(RecordingNotifier):
            async def send_alert_webhook(self, url, alert, item):
                raise RuntimeError("network down")

        service = AlertService(repository, BrokenNotifier())
        draft = AlertDraft(type="back_in_stock", source="supplier", message="back", severity="medium")

        alert = await service.emit(sample_item, draft, tenant_settings)

        assert alert.id is not None
        assert len(await repository.list_alerts("tenant-a")) == 1

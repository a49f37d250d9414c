"""Alert delivery over webhook (httpx) and email (SMTP)."""

import asyncio
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx
import structlog

from listingwatch.config import settings
from listingwatch.models.alert import Alert
from listingwatch.models.monitored_item import MonitoredItem

logger = structlog.get_logger(__name__)

EMAIL_SUBJECTS = {
    "price_increase": "Price increase",
    "price_decrease": "Price drop",
    "out_of_stock": "Out of stock",
    "back_in_stock": "Back in stock",
    "supplier_unavailable": "Supplier unavailable",
    "competitor_price": "Competitor undercut",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def build_webhook_payload(alert: Alert, item: MonitoredItem) -> Dict[str, Any]:
    """JSON body posted to tenant webhooks."""
    return {
        "alert": {
            "id": str(alert.id),
            "type": alert.type,
            "source": alert.source,
            "message": alert.message,
            "severity": alert.severity,
            "old_value": alert.old_value,
            "new_value": alert.new_value,
            "created_at": _iso(alert.created_at),
        },
        "item": {
            "id": str(item.id),
            "title": item.title,
            "marketplace_item_id": item.marketplace_item_id,
            "url": item.url,
            "supplier_url": item.supplier_url,
        },
        "sent_at": datetime.now(timezone.utc).isoformat(),
    }


def is_valid_webhook_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class NotificationService:
    """Sends alerts out. Neither channel ever raises."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self.logger = logger.bind(service="notification_service")

    async def send_alert_webhook(self, url: str, alert: Alert, item: MonitoredItem) -> bool:
        """POST the alert to ``url``.

        Returns:
            True when the endpoint answered with a success status
        """
        if not is_valid_webhook_url(url):
            self.logger.warning("webhook_url_invalid", url=url)
            return False

        payload = build_webhook_payload(alert, item)
        try:
            async with httpx.AsyncClient(
                timeout=settings.WEBHOOK_TIMEOUT, transport=self._transport
            ) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.warning("webhook_failed", url=url, alert_id=str(alert.id), error=str(e))
            return False

        self.logger.info("webhook_sent", url=url, alert_id=str(alert.id))
        return True

    async def send_alert_email(self, address: str, alert: Alert, item: MonitoredItem) -> bool:
        """Email the alert to ``address``.

        Returns:
            True when the SMTP server accepted the message; False when SMTP
            is not configured or delivery failed
        """
        if not settings.smtp_configured:
            self.logger.debug("email_skipped", reason="smtp_not_configured")
            return False
        if not address:
            return False

        message = self._build_email(address, alert, item)
        try:
            await asyncio.to_thread(self._send_smtp, message)
        except (smtplib.SMTPException, OSError) as e:
            self.logger.warning("email_failed", address=address, alert_id=str(alert.id), error=str(e))
            return False

        self.logger.info("email_sent", address=address, alert_id=str(alert.id))
        return True

    def _build_email(self, address: str, alert: Alert, item: MonitoredItem) -> EmailMessage:
        subject = EMAIL_SUBJECTS.get(alert.type, "Listing alert")
        message = EmailMessage()
        message["Subject"] = f"[{alert.severity.upper()}] {subject}: {item.title[:80]}"
        message["From"] = settings.EMAIL_FROM
        message["To"] = address
        lines = [
            alert.message,
            "",
            f"Item: {item.title}",
            f"Listing: {item.url}",
        ]
        if item.supplier_url:
            lines.append(f"Supplier: {item.supplier_url}")
        message.set_content("\n".join(lines))
        return message

    def _send_smtp(self, message: EmailMessage) -> None:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
            if settings.SMTP_USE_TLS:
                smtp.starttls()
            if settings.SMTP_USER:
                smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            smtp.send_message(message)

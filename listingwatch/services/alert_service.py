"""Alert emission: persist, then notify."""

from typing import List, Optional

import structlog

from listingwatch.models.alert import Alert
from listingwatch.models.monitored_item import MonitoredItem
from listingwatch.models.tenant_settings import TenantSettings
from listingwatch.services.change_detector import AlertDraft
from listingwatch.services.notification_service import NotificationService
from listingwatch.services.repository import MonitoringRepository

logger = structlog.get_logger(__name__)


class AlertService:
    """Turns drafts into stored alerts and pushes them to the tenant."""

    def __init__(self, repository: MonitoringRepository, notifier: NotificationService):
        self.repository = repository
        self.notifier = notifier
        self.logger = logger.bind(service="alert_service")

    async def emit(
        self, item: MonitoredItem, draft: AlertDraft, tenant_settings: TenantSettings
    ) -> Optional[Alert]:
        """Persist one alert and deliver it over the tenant's channels.

        Returns None when the alert could not be stored; nothing is sent then.
        """
        try:
            alert = await self.repository.create_alert(
                Alert(
                    item_id=item.id,
                    tenant_id=item.tenant_id,
                    type=draft.type,
                    source=draft.source,
                    old_value=draft.old_value,
                    new_value=draft.new_value,
                    message=draft.message,
                    severity=draft.severity,
                    read=False,
                    email_sent=False,
                )
            )
        except Exception as e:
            self.logger.error(
                "alert_persist_failed",
                item_id=str(item.id),
                alert_type=draft.type,
                error=str(e),
                exc_info=True,
            )
            return None
        await self._notify(alert, item, tenant_settings)
        return alert

    async def emit_all(
        self, item: MonitoredItem, drafts: List[AlertDraft], tenant_settings: TenantSettings
    ) -> List[Alert]:
        alerts = []
        for draft in drafts:
            alert = await self.emit(item, draft, tenant_settings)
            if alert is not None:
                alerts.append(alert)
        return alerts

    async def _notify(
        self, alert: Alert, item: MonitoredItem, tenant_settings: TenantSettings
    ) -> None:
        if tenant_settings.email_alerts and tenant_settings.email_address:
            try:
                sent = await self.notifier.send_alert_email(
                    tenant_settings.email_address, alert, item
                )
                if sent:
                    await self.repository.mark_alert_emailed(alert.id)
                    alert.email_sent = True
            except Exception as e:
                self.logger.error("email_notification_error", alert_id=str(alert.id), error=str(e))

        if tenant_settings.webhook_url:
            try:
                await self.notifier.send_alert_webhook(tenant_settings.webhook_url, alert, item)
            except Exception as e:
                self.logger.error("webhook_notification_error", alert_id=str(alert.id), error=str(e))

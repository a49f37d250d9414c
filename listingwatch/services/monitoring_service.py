"""Monitoring cycle: check each due item against its three sources.

For one item the sources run in a fixed order (marketplace, supplier,
competitor). A failure in one source is logged and never stops the others,
and a failing item never stops the cycle.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

import structlog

from listingwatch.config import settings
from listingwatch.core.exceptions import CredentialsNotConfigured, ListingWatchException
from listingwatch.models.alert import Alert
from listingwatch.models.base import as_utc
from listingwatch.models.monitored_item import MonitoredItem
from listingwatch.models.price_history import PriceHistory
from listingwatch.models.tenant_settings import TenantSettings
from listingwatch.services.alert_service import AlertService
from listingwatch.services.change_detector import ChangeDetector
from listingwatch.services.repository import MonitoringRepository

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CheckResult:
    """Outcome of checking one item."""

    item: MonitoredItem
    alerts: List[Alert] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


@dataclass
class CycleStats:
    """Outcome of one tenant cycle."""

    tenant_id: str
    checked: int = 0
    skipped: int = 0
    failed: int = 0
    alerts: int = 0


class MonitoringService:
    """Runs monitoring checks using the adapters of an AdapterFactory.

    ``adapters`` only needs ``marketplace``, ``supplier`` and ``competitor``
    attributes, so tests can pass lightweight fakes.
    """

    def __init__(
        self,
        repository: MonitoringRepository,
        adapters,
        alert_service: AlertService,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        inter_item_delay: Optional[float] = None,
    ):
        self.repository = repository
        self.adapters = adapters
        self.alert_service = alert_service
        self._clock = clock
        self._sleep = sleep
        self.inter_item_delay = (
            settings.INTER_PRODUCT_DELAY if inter_item_delay is None else inter_item_delay
        )
        self.logger = logger.bind(service="monitoring_service")

    def is_due(self, item: MonitoredItem, frequency_minutes: int, now: datetime) -> bool:
        if item.last_checked_at is None:
            return True
        return now - as_utc(item.last_checked_at) >= timedelta(minutes=frequency_minutes)

    async def _record_history(
        self, item: MonitoredItem, source: str, price, stock_state: str, now: datetime
    ) -> None:
        await self.repository.append_history(
            PriceHistory(
                item_id=item.id,
                source=source,
                price=price,
                stock_state=stock_state,
                checked_at=now,
            )
        )

    async def check_item(self, item: MonitoredItem, tenant_settings: TenantSettings) -> CheckResult:
        """Check one item against marketplace, supplier and competitor sources."""
        log = self.logger.bind(item_id=str(item.id), tenant_id=item.tenant_id)
        detector = ChangeDetector(tenant_settings)
        result = CheckResult(item=item)
        now = self._clock()

        # 1. Marketplace listing
        try:
            snapshot = await self.adapters.marketplace.fetch_item(item.url)
            drafts = detector.compare_marketplace(item, snapshot)
            await self._record_history(item, "marketplace", snapshot.price, snapshot.stock_state, now)

            item.marketplace_price = snapshot.price
            item.stock_state = snapshot.stock_state
            if snapshot.title:
                item.title = snapshot.title
            if snapshot.images:
                item.images = snapshot.images
            if snapshot.seller_id:
                item.seller_id = snapshot.seller_id
            result.succeeded.append("marketplace")
            result.alerts += await self.alert_service.emit_all(item, drafts, tenant_settings)
        except ListingWatchException as e:
            log.warning("marketplace_check_failed", error=e.message)
            result.failed.append("marketplace")
        except Exception as e:
            log.error("marketplace_check_error", error=str(e), exc_info=True)
            result.failed.append("marketplace")

        # 2. Supplier
        if item.supplier_url:
            try:
                snapshot = await self.adapters.supplier.fetch(item.supplier_url)
                drafts = detector.compare_supplier(item, snapshot)
                await self._record_history(item, "supplier", snapshot.price, snapshot.stock_state, now)

                item.supplier_price = snapshot.price
                item.supplier_stock_state = snapshot.stock_state
                result.succeeded.append("supplier")
                result.alerts += await self.alert_service.emit_all(item, drafts, tenant_settings)
            except Exception as e:
                error = e.message if isinstance(e, ListingWatchException) else str(e)
                log.warning("supplier_check_failed", supplier_url=item.supplier_url, error=error)
                drafts = detector.supplier_failure(item, error)
                result.alerts += await self.alert_service.emit_all(item, drafts, tenant_settings)
                item.supplier_stock_state = "unknown"
                result.failed.append("supplier")

        # 3. Competitors
        if item.marketplace_price and item.title:
            try:
                insights = await self.adapters.competitor.fetch_insights(
                    item.title, item.marketplace_price, item.marketplace_item_id
                )
                if insights is not None:
                    drafts = detector.compare_competitor(item, insights.summary, item.marketplace_price)
                    await self._record_history(item, "competitor", insights.lowest_price, "in_stock", now)

                    item.competitor_listings = [listing.to_dict() for listing in insights.listings]
                    item.competitor_summary = insights.summary.to_dict()
                    result.alerts += await self.alert_service.emit_all(item, drafts, tenant_settings)
                result.succeeded.append("competitor")
            except CredentialsNotConfigured:
                log.debug("competitor_check_skipped", reason="credentials_not_configured")
            except ListingWatchException as e:
                log.warning("competitor_check_failed", error=e.message)
                result.failed.append("competitor")
            except Exception as e:
                log.error("competitor_check_error", error=str(e), exc_info=True)
                result.failed.append("competitor")

        item.last_checked_at = now
        item.calculate_profit()
        result.item = await self.repository.upsert_item(item)

        log.info(
            "item_checked",
            succeeded=result.succeeded,
            failed=result.failed,
            alerts=len(result.alerts),
        )
        return result

    async def run_cycle(self, tenant_id: str) -> CycleStats:
        """Check every due item of a tenant, one at a time."""
        stats = CycleStats(tenant_id=tenant_id)
        tenant_settings = await self.repository.get_tenant_settings(tenant_id)
        items = await self.repository.list_active_items(tenant_id)
        frequency = tenant_settings.effective_frequency()

        now = self._clock()
        due = [item for item in items if self.is_due(item, frequency, now)]
        stats.skipped = len(items) - len(due)

        self.logger.info(
            "cycle_started",
            tenant_id=tenant_id,
            active_items=len(items),
            due_items=len(due),
        )

        for index, item in enumerate(due):
            if index > 0 and self.inter_item_delay > 0:
                await self._sleep(self.inter_item_delay)
            try:
                result = await self.check_item(item, tenant_settings)
                stats.checked += 1
                stats.alerts += len(result.alerts)
            except Exception as e:
                stats.failed += 1
                self.logger.error(
                    "item_check_failed",
                    tenant_id=tenant_id,
                    item_id=str(item.id),
                    error=str(e),
                    exc_info=True,
                )

        self.logger.info(
            "cycle_completed",
            tenant_id=tenant_id,
            checked=stats.checked,
            skipped=stats.skipped,
            failed=stats.failed,
            alerts=stats.alerts,
        )
        return stats

    async def run_all_tenants(self) -> List[CycleStats]:
        """One cycle for every known tenant."""
        results = []
        for tenant_id in await self.repository.list_tenant_ids():
            try:
                results.append(await self.run_cycle(tenant_id))
            except Exception as e:
                self.logger.error("tenant_cycle_failed", tenant_id=tenant_id, error=str(e), exc_info=True)
        return results

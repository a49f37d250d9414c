"""Tests for MonitoringService item checks and tenant cycles."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from listingwatch.core.exceptions import (
    CredentialsNotConfigured,
    NoProductData,
    TransientFetchError,
)
from listingwatch.models import MonitoredItem
from listingwatch.scrapers.base import CompetitorInsights, CompetitorListing, CompetitorSummary
from listingwatch.services.alert_service import AlertService
from listingwatch.services.monitoring_service import MonitoringService

from conftest import (
    FakeAdapters,
    FakeCompetitor,
    FakeMarketplace,
    FakeSupplier,
    RecordingNotifier,
    make_snapshot,
    no_sleep,
)

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class SleepRecorder:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


def competitor_insights(lowest: str = "90.00", our_price: str = "100.00") -> CompetitorInsights:
    listing = CompetitorListing(
        listing_id="256000000001",
        title="Haribo Starmix 160g",
        price=Decimal(lowest),
        seller_name="cheap_sweets",
        url="https://www.ebay.co.uk/itm/256000000001",
    )
    summary = CompetitorSummary(
        lowest_price=Decimal(lowest),
        seller_name="cheap_sweets",
        listing_id="256000000001",
        url=listing.url,
        total_sellers=1,
        difference_to_our_price=Decimal(our_price) - Decimal(lowest),
        our_price=Decimal(our_price),
    )
    return CompetitorInsights(listings=[listing], summary=summary)


def make_service(repository, adapters, clock=None, sleep=no_sleep, inter_item_delay=0.0):
    return MonitoringService(
        repository,
        adapters,
        AlertService(repository, RecordingNotifier()),
        clock=clock or Clock(),
        sleep=sleep,
        inter_item_delay=inter_item_delay,
    )


async def add_item(repository, marketplace_item_id: str, tenant_id: str = "tenant-a") -> MonitoredItem:
    return await repository.upsert_item(
        MonitoredItem(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            marketplace_item_id=marketplace_item_id,
            url=f"https://www.ebay.co.uk/itm/{marketplace_item_id}",
            title="Lindor Milk 200g",
            marketplace_price=Decimal("100.00"),
            stock_state="in_stock",
            images=[],
            competitor_listings=[],
            is_active=True,
        )
    )


# ============================================================================
# TESTS: CHECK ITEM
# ============================================================================

class TestCheckItem:
    """Tests for MonitoringService.check_item."""

    async def test_updates_state_history_and_profit(self, repository, sample_item, tenant_settings):
        adapters = FakeAdapters(
            marketplace=FakeMarketplace(make_snapshot("106.00", images=["https://i.ebayimg.com/a.jpg"])),
            supplier=FakeSupplier(make_snapshot("60.00")),
        )
        service = make_service(repository, adapters)

        result = await service.check_item(sample_item, tenant_settings)

        assert result.succeeded == ["marketplace", "supplier", "competitor"]
        assert result.failed == []
        assert [(a.type, a.severity) for a in result.alerts] == [("price_increase", "medium")]

        stored = await repository.find_item("tenant-a", "256123456789")
        assert stored.marketplace_price == Decimal("106.00")
        assert stored.images == ["https://i.ebayimg.com/a.jpg"]
        assert stored.profit == Decimal("46.00")
        assert stored.profit_margin == Decimal("43.40")
        assert stored.last_checked_at is not None

        history = await repository.list_history(sample_item.id)
        assert sorted(entry.source for entry in history) == ["marketplace", "supplier"]

    async def test_marketplace_failure_does_not_stop_supplier(self, repository, sample_item, tenant_settings):
        adapters = FakeAdapters(
            marketplace=FakeMarketplace(error=NoProductData("marketplace", sample_item.url)),
            supplier=FakeSupplier(make_snapshot("66.00")),
        )
        service = make_service(repository, adapters)

        result = await service.check_item(sample_item, tenant_settings)

        assert result.failed == ["marketplace"]
        assert "supplier" in result.succeeded
        assert [a.type for a in result.alerts] == ["price_increase"]
        assert result.alerts[0].source == "supplier"

        history = await repository.list_history(sample_item.id)
        assert [entry.source for entry in history] == ["supplier"]

    async def test_supplier_failure_alerts_once(self, repository, sample_item, tenant_settings):
        adapters = FakeAdapters(supplier=FakeSupplier(error=TransientFetchError("amazon", "timeout")))
        service = make_service(repository, adapters)

        first = await service.check_item(sample_item, tenant_settings)
        second = await service.check_item(first.item, tenant_settings)

        assert [a.type for a in first.alerts] == ["supplier_unavailable"]
        assert second.alerts == []
        stored = await repository.find_item("tenant-a", "256123456789")
        assert stored.supplier_stock_state == "unknown"
        assert stored.supplier_price == Decimal("60.00")

    async def test_missing_credentials_skip_competitor_silently(self, repository, sample_item, tenant_settings):
        adapters = FakeAdapters(competitor=FakeCompetitor(error=CredentialsNotConfigured("marketplace oauth")))
        service = make_service(repository, adapters)

        result = await service.check_item(sample_item, tenant_settings)

        assert "competitor" not in result.succeeded
        assert "competitor" not in result.failed

    async def test_competitor_insights_stored(self, repository, sample_item, tenant_settings):
        competitor = FakeCompetitor(competitor_insights("90.00"))
        service = make_service(repository, FakeAdapters(competitor=competitor))

        result = await service.check_item(sample_item, tenant_settings)

        assert [(a.type, a.severity) for a in result.alerts] == [("competitor_price", "medium")]
        assert competitor.calls == [("Haribo Starmix 160g Sharing Bag", Decimal("100.00"), "256123456789")]
        stored = await repository.find_item("tenant-a", "256123456789")
        assert stored.competitor_summary["lowest_price"] == "90.00"
        assert stored.competitor_listings[0]["listing_id"] == "256000000001"

    async def test_item_without_supplier_skips_supplier(self, repository, tenant_settings):
        item = await add_item(repository, "256000000077")
        adapters = FakeAdapters()
        service = make_service(repository, adapters)

        result = await service.check_item(item, tenant_settings)

        assert adapters.supplier.calls == []
        assert "supplier" not in result.succeeded

    async def test_alert_storage_failure_keeps_history_and_state(
        self, repository, sample_item, tenant_settings, monkeypatch
    ):
        create_alert = AsyncMock(side_effect=RuntimeError("database is locked"))
        monkeypatch.setattr(repository, "create_alert", create_alert)
        adapters = FakeAdapters(
            marketplace=FakeMarketplace(make_snapshot("106.00")),
            supplier=FakeSupplier(make_snapshot("60.00", stock_state="out_of_stock")),
        )
        service = make_service(repository, adapters)

        result = await service.check_item(sample_item, tenant_settings)

        assert create_alert.await_count == 2
        assert result.alerts == []
        assert result.succeeded == ["marketplace", "supplier", "competitor"]
        assert result.failed == []

        history = await repository.list_history(sample_item.id)
        assert sorted(entry.source for entry in history) == ["marketplace", "supplier"]
        stored = await repository.find_item("tenant-a", "256123456789")
        assert stored.marketplace_price == Decimal("106.00")
        assert stored.supplier_stock_state == "out_of_stock"

    async def test_alert_storage_failure_on_supplier_error(
        self, repository, sample_item, tenant_settings, monkeypatch
    ):
        monkeypatch.setattr(repository, "create_alert", AsyncMock(side_effect=RuntimeError("disk full")))
        adapters = FakeAdapters(supplier=FakeSupplier(error=TransientFetchError("amazon", "timeout")))
        service = make_service(repository, adapters)

        result = await service.check_item(sample_item, tenant_settings)

        assert result.failed == ["supplier"]
        assert result.alerts == []
        stored = await repository.find_item("tenant-a", "256123456789")
        assert stored.supplier_stock_state == "unknown"
        assert stored.last_checked_at is not None


# ============================================================================
# TESTS: CYCLE
# ============================================================================

class TestRunCycle:
    """Tests for MonitoringService.run_cycle."""

    async def test_unchanged_upstream_is_idempotent(self, repository, sample_item):
        """Two cycles with unchanged upstream: no new alerts, history grows per source."""
        clock = Clock()
        adapters = FakeAdapters(
            marketplace=FakeMarketplace(make_snapshot("100.00")),
            supplier=FakeSupplier(make_snapshot("60.00")),
            competitor=FakeCompetitor(competitor_insights("90.00")),
        )
        service = make_service(repository, adapters, clock=clock)

        first = await service.run_cycle("tenant-a")
        alerts_after_first = len(await repository.list_alerts("tenant-a"))
        history_after_first = len(await repository.list_history(sample_item.id))

        clock.advance(minutes=31)
        second = await service.run_cycle("tenant-a")

        assert first.checked == second.checked == 1
        assert second.alerts == 0
        assert len(await repository.list_alerts("tenant-a")) == alerts_after_first
        history = await repository.list_history(sample_item.id)
        assert len(history) == history_after_first + 3
        for source in ("marketplace", "supplier", "competitor"):
            assert len([entry for entry in history if entry.source == source]) == 2

    async def test_items_not_due_are_skipped(self, repository, sample_item):
        clock = Clock()
        adapters = FakeAdapters()
        service = make_service(repository, adapters, clock=clock)

        await service.run_cycle("tenant-a")
        clock.advance(minutes=10)
        stats = await service.run_cycle("tenant-a")

        assert stats.checked == 0
        assert stats.skipped == 1
        assert len(adapters.marketplace.calls) == 1

    async def test_items_processed_sequentially_with_delay(self, repository, sample_item):
        await add_item(repository, "256000000002")
        await add_item(repository, "256000000003")
        sleep = SleepRecorder()
        service = make_service(repository, FakeAdapters(), sleep=sleep, inter_item_delay=2.0)

        stats = await service.run_cycle("tenant-a")

        assert stats.checked == 3
        assert sleep.waits == [2.0, 2.0]

    async def test_failing_item_does_not_stop_cycle(self, repository, sample_item, monkeypatch):
        await add_item(repository, "256000000002")
        service = make_service(repository, FakeAdapters())
        original = service.check_item

        async def flaky_check(item, tenant_settings):
            if item.marketplace_item_id == "256123456789":
                raise RuntimeError("database went away")
            return await original(item, tenant_settings)

        monkeypatch.setattr(service, "check_item", flaky_check)

        stats = await service.run_cycle("tenant-a")

        assert stats.failed == 1
        assert stats.checked == 1

    async def test_inactive_items_ignored(self, repository, sample_item):
        sample_item.is_active = False
        await repository.upsert_item(sample_item)
        adapters = FakeAdapters()

        stats = await make_service(repository, adapters).run_cycle("tenant-a")

        assert stats.checked == 0
        assert adapters.marketplace.calls == []

    async def test_run_all_tenants(self, repository, sample_item):
        await add_item(repository, "256000000002", tenant_id="tenant-b")

        results = await make_service(repository, FakeAdapters()).run_all_tenants()

        assert sorted(stats.tenant_id for stats in results) == ["tenant-a", "tenant-b"]
        assert all(stats.checked == 1 for stats in results)

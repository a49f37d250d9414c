"""Pytest configuration and shared fixtures."""

import uuid
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from listingwatch.models import Base, MonitoredItem, TenantSettings
from listingwatch.scrapers.base import Snapshot
from listingwatch.services.repository import SqlAlchemyRepository


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def repository(session_factory) -> SqlAlchemyRepository:
    return SqlAlchemyRepository(session_factory)


@pytest_asyncio.fixture
async def sample_item(repository: SqlAlchemyRepository) -> MonitoredItem:
    """A stored, in-stock item with a supplier and no check yet."""
    item = MonitoredItem(
        id=uuid.uuid4(),
        tenant_id="tenant-a",
        marketplace_item_id="256123456789",
        url="https://www.ebay.co.uk/itm/256123456789",
        title="Haribo Starmix 160g Sharing Bag",
        marketplace_price=Decimal("100.00"),
        stock_state="in_stock",
        images=[],
        supplier_url="https://www.amazon.co.uk/dp/B000TEST01",
        supplier_price=Decimal("60.00"),
        supplier_stock_state="in_stock",
        competitor_listings=[],
        is_active=True,
    )
    return await repository.upsert_item(item)


@pytest.fixture
def tenant_settings() -> TenantSettings:
    """Detached settings with explicit defaults (no database needed)."""
    return TenantSettings(
        tenant_id="tenant-a",
        monitoring_frequency=30,
        price_change_threshold=5.0,
        email_alerts=False,
        alert_types={},
    )


# ============================================================================
# FAKES
# ============================================================================

def make_snapshot(price: str = "100.00", stock_state: str = "in_stock", **kwargs) -> Snapshot:
    kwargs.setdefault("title", "Haribo Starmix 160g Sharing Bag")
    return Snapshot(price=Decimal(price), stock_state=stock_state, **kwargs)


class FakeMarketplace:
    def __init__(self, snapshot: Optional[Snapshot] = None, error: Optional[Exception] = None):
        self.snapshot = snapshot
        self.error = error
        self.calls: List[str] = []

    async def fetch_item(self, url: str) -> Snapshot:
        self.calls.append(url)
        if self.error:
            raise self.error
        return self.snapshot


class FakeSupplier:
    def __init__(self, snapshot: Optional[Snapshot] = None, error: Optional[Exception] = None):
        self.snapshot = snapshot
        self.error = error
        self.calls: List[str] = []

    async def fetch(self, url: str) -> Snapshot:
        self.calls.append(url)
        if self.error:
            raise self.error
        return self.snapshot


class FakeCompetitor:
    def __init__(self, insights=None, error: Optional[Exception] = None):
        self.insights = insights
        self.error = error
        self.calls: List[tuple] = []

    async def fetch_insights(self, title, our_price=None, own_item_id=None):
        self.calls.append((title, our_price, own_item_id))
        if self.error:
            raise self.error
        return self.insights


class FakeAdapters:
    """Stands in for AdapterFactory in service tests."""

    def __init__(self, **adapters):
        self.marketplace = adapters.get("marketplace", FakeMarketplace(make_snapshot()))
        self.supplier = adapters.get("supplier", FakeSupplier(make_snapshot("60.00")))
        self.competitor = adapters.get("competitor", FakeCompetitor())
        self.supplier_catalog = adapters.get("supplier_catalog")
        self.store_import = adapters.get("store_import")


class RecordingNotifier:
    """NotificationService double that records deliveries."""

    def __init__(self, email_result: bool = True):
        self.email_result = email_result
        self.emails: List[Dict] = []
        self.webhooks: List[Dict] = []

    async def send_alert_email(self, address, alert, item) -> bool:
        self.emails.append({"address": address, "alert": alert, "item": item})
        return self.email_result

    async def send_alert_webhook(self, url, alert, item) -> bool:
        self.webhooks.append({"url": url, "alert": alert, "item": item})
        return True


async def no_sleep(seconds: float) -> None:
    return None

"""Bulk import of a marketplace store into a tenant's monitored items."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List

import structlog

from listingwatch.core.exceptions import CredentialsNotConfigured, ListingWatchException
from listingwatch.models.monitored_item import MonitoredItem
from listingwatch.scrapers.base import ListingItem
from listingwatch.services.repository import MonitoringRepository

logger = structlog.get_logger(__name__)


@dataclass
class ImportResult:
    """Counters for one store import."""

    store_url: str
    seller_id: str = None
    total: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    supplier_mapped: int = 0
    competitor_synced: int = 0
    errors: List[dict] = field(default_factory=list)


class ImportService:
    """Imports every listing of a store, mapping suppliers and competitors.

    ``adapters`` needs ``store_import``, ``supplier_catalog`` and
    ``competitor`` attributes (an AdapterFactory in production).
    """

    def __init__(
        self,
        repository: MonitoringRepository,
        adapters,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.repository = repository
        self.adapters = adapters
        self._clock = clock
        self.logger = logger.bind(service="import_service")

    async def import_store(self, tenant_id: str, store_url: str) -> ImportResult:
        """Import or refresh every listing of ``store_url`` for a tenant.

        Raises:
            NoProductData: If the store could not be resolved to any listings
        """
        store = await self.adapters.store_import.fetch_store_listings(store_url)
        result = ImportResult(store_url=store_url, seller_id=store.seller_id, total=len(store.items))

        for listing in store.items:
            try:
                await self._import_listing(tenant_id, listing, store.seller_id, result)
            except Exception as e:
                result.skipped += 1
                result.errors.append({"item_id": listing.item_id, "error": str(e)})
                self.logger.warning(
                    "listing_import_failed",
                    tenant_id=tenant_id,
                    item_id=listing.item_id,
                    error=str(e),
                )

        self.logger.info(
            "store_imported",
            tenant_id=tenant_id,
            store_url=store_url,
            total=result.total,
            imported=result.imported,
            updated=result.updated,
            skipped=result.skipped,
            supplier_mapped=result.supplier_mapped,
            competitor_synced=result.competitor_synced,
        )
        return result

    async def _import_listing(
        self, tenant_id: str, listing: ListingItem, seller_id: str, result: ImportResult
    ) -> None:
        if listing.price is None or listing.price <= 0:
            result.skipped += 1
            result.errors.append({"item_id": listing.item_id, "error": "listing has no price"})
            return

        now = self._clock()
        item = await self.repository.find_item(tenant_id, listing.item_id)
        is_new = item is None

        if is_new:
            item = MonitoredItem(
                id=uuid.uuid4(),
                tenant_id=tenant_id,
                marketplace_item_id=listing.item_id,
                url=listing.url,
                title=listing.title,
                marketplace_price=listing.price,
                stock_state=listing.stock_state,
                images=listing.images,
                seller_id=seller_id,
                supplier_stock_state="unknown",
                competitor_listings=[],
                is_active=True,
                last_checked_at=now,
            )
        else:
            item.title = listing.title or item.title
            item.marketplace_price = listing.price
            item.stock_state = listing.stock_state
            if listing.images:
                item.images = listing.images
            item.is_active = True
            item.last_checked_at = now

        if not item.supplier_url:
            match = await self.adapters.supplier_catalog.find_match(item.title)
            if match is not None:
                item.supplier_url = match.url
                item.supplier_price = match.price
                item.supplier_stock_state = match.stock_state
                item.supplier_sku = match.sku
                result.supplier_mapped += 1

        if is_new:
            try:
                insights = await self.adapters.competitor.fetch_insights(
                    item.title, item.marketplace_price, item.marketplace_item_id
                )
                if insights is not None:
                    item.competitor_listings = [entry.to_dict() for entry in insights.listings]
                    item.competitor_summary = insights.summary.to_dict()
                    result.competitor_synced += 1
            except CredentialsNotConfigured:
                pass
            except ListingWatchException as e:
                self.logger.warning("competitor_sync_failed", item_id=listing.item_id, error=e.message)

        item.calculate_profit()
        await self.repository.upsert_item(item)

        if is_new:
            result.imported += 1
        else:
            result.updated += 1

"""Store bulk-import adapter.

Resolves a store URL to the seller's true identity, then collects the full
listing set from the Finding API, falling back to paginated extraction of
the storefront when the API yields nothing.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional
from urllib.parse import unquote

import httpx

from listingwatch.config import PLACEHOLDER_CREDENTIALS, settings
from listingwatch.core.exceptions import ListingWatchException, NoProductData, TransientFetchError
from listingwatch.scrapers.adapters.finding import (
    finding_params,
    parse_finding_item,
    search_items,
    total_pages,
)
from listingwatch.scrapers.base import BaseAdapter, ListingItem
from listingwatch.scrapers.extraction.engine import ExtractionEngine
from listingwatch.scrapers.extraction.seller import is_plausible_seller
from listingwatch.scrapers.utils.rate_limiter import SourceRateLimiter

FINDING_OPERATION = "findItemsAdvanced"
ENTRIES_PER_PAGE = 200
MAX_API_PAGES = 50
MAX_CATEGORY_HOPS = 3

STORE_NAME_PATTERNS = (
    re.compile(r"/str/([^/?#]+)"),
    re.compile(r"/usr/([^/?#]+)"),
    re.compile(r"[?&]_ssn=([^&#]+)"),
)


def extract_store_name(url: str) -> Optional[str]:
    """Store slug from ``/str/<name>``, ``/usr/<name>`` or ``?_ssn=<name>``."""
    for pattern in STORE_NAME_PATTERNS:
        match = pattern.search(url or "")
        if match:
            return unquote(match.group(1))
    return None


@dataclass
class StoreListing:
    """Everything collected for one store."""

    store_url: str
    store_name: str
    seller_id: Optional[str]
    items: List[ListingItem] = field(default_factory=list)
    source: str = "api"  # 'api' or 'scrape'


class StoreImportAdapter(BaseAdapter):
    """Collects every listing of a marketplace store."""

    source_name = "store_import"
    adapter_type = "hybrid"

    def __init__(
        self,
        engine: ExtractionEngine,
        rate_limiter: Optional[SourceRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        app_id: Optional[str] = None,
        page_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(rate_limiter=rate_limiter, transport=transport)
        self.engine = engine
        self.app_id = settings.EBAY_APP_ID if app_id is None else app_id
        self.page_delay = page_delay
        self._sleep = sleep

    extract_store_name = staticmethod(extract_store_name)

    @property
    def api_configured(self) -> bool:
        return self.app_id not in PLACEHOLDER_CREDENTIALS

    def _accept_seller(self, candidate: Optional[str], store_name: str) -> bool:
        if not is_plausible_seller(candidate):
            return False
        # A store slug is not a seller identity
        return candidate.lower() != store_name.lower()

    async def resolve_seller_id(self, store_url: str, store_name: str) -> Optional[str]:
        """True seller identity for a store.

        Tries the storefront, then up to three category sub-pages, then the
        first product page linked from the storefront.

        Returns:
            Seller identity, or None when every page was unresolved
        """
        await self._throttle("marketplace")
        try:
            inspection = await self.engine.inspect_page(store_url)
        except ListingWatchException as e:
            self.logger.warning("storefront_inspection_failed", url=store_url, error=e.message)
            return None

        if self._accept_seller(inspection.seller_id, store_name):
            self.logger.info("seller_resolved", via="storefront", seller_id=inspection.seller_id)
            return inspection.seller_id

        hops = [("category", url) for url in inspection.category_urls[:MAX_CATEGORY_HOPS]]
        if inspection.first_item_url:
            hops.append(("product", inspection.first_item_url))

        for via, url in hops:
            await self._throttle("marketplace")
            try:
                seller_id = await self.engine.extract_seller_identity(url)
            except ListingWatchException as e:
                self.logger.warning("seller_hop_failed", via=via, url=url, error=e.message)
                continue
            if self._accept_seller(seller_id, store_name):
                self.logger.info("seller_resolved", via=via, seller_id=seller_id)
                return seller_id

        self.logger.warning("seller_unresolved", store_name=store_name)
        return None

    async def fetch_listings_api(self, seller_id: str) -> List[ListingItem]:
        """All fixed-price listings of ``seller_id`` from the Finding API.

        Returns an empty list on any failure so the caller falls back to
        scraping.
        """
        if not self.api_configured:
            self.logger.info("api_listing_skipped", reason="app_id_not_configured")
            return []

        items: List[ListingItem] = []
        page_number = 1
        try:
            while page_number <= MAX_API_PAGES:
                if page_number > 1:
                    await self._sleep(self.page_delay)
                await self._throttle("marketplace_api")

                params = finding_params(
                    FINDING_OPERATION,
                    self.app_id,
                    **{
                        "itemFilter(0).name": "Seller",
                        "itemFilter(0).value": seller_id,
                        "itemFilter(1).name": "ListingType",
                        "itemFilter(1).value": "FixedPrice",
                        "paginationInput.entriesPerPage": str(ENTRIES_PER_PAGE),
                        "paginationInput.pageNumber": str(page_number),
                        "outputSelector(0)": "SellerInfo",
                    },
                )
                response = await self._http_get(
                    settings.ebay_finding_url,
                    params=params,
                    headers={"Accept": "application/json"},
                )
                data = response.json()

                for raw in search_items(data, FINDING_OPERATION):
                    fields = parse_finding_item(raw)
                    if not fields["item_id"]:
                        continue
                    items.append(
                        ListingItem(
                            item_id=fields["item_id"],
                            url=fields["url"] or f"{settings.MARKETPLACE_BASE_URL}/itm/{fields['item_id']}",
                            title=fields["title"] or f"Item {fields['item_id']}",
                            price=fields["price"],
                            images=fields["images"],
                            stock_state=fields["stock_state"],
                            condition=fields["condition"],
                            quantity=fields["quantity"],
                        )
                    )

                pages = total_pages(data, FINDING_OPERATION)
                self.logger.info(
                    "api_listing_page",
                    seller_id=seller_id,
                    page=page_number,
                    total_pages=pages,
                    items=len(items),
                )
                if page_number >= pages:
                    break
                page_number += 1

        except TransientFetchError as e:
            self.logger.warning(
                "api_listing_failed",
                seller_id=seller_id,
                page=page_number,
                status_code=e.status_code,
                error=e.message,
            )
            return []
        except ValueError as e:
            # Malformed JSON body
            self.logger.warning("api_listing_invalid_response", seller_id=seller_id, error=str(e))
            return []

        return items

    async def fetch_store_listings(self, store_url: str) -> StoreListing:
        """Resolve the store's seller and collect its listings.

        Raises:
            NoProductData: If the URL names no store or no listings were found
        """
        store_name = self.extract_store_name(store_url)
        if not store_name:
            raise NoProductData(self.source_name, store_url)

        seller_id = await self.resolve_seller_id(store_url, store_name)

        items: List[ListingItem] = []
        source = "api"
        if seller_id:
            items = await self.fetch_listings_api(seller_id)

        if not items:
            source = "scrape"
            self.logger.info("listing_scrape_fallback", store_url=store_url)
            try:
                items = await self.engine.extract_listings(store_url)
            except ListingWatchException as e:
                self.logger.error("listing_scrape_failed", store_url=store_url, error=e.message)
                items = []

        if not items:
            raise NoProductData(self.source_name, store_url)

        self.logger.info(
            "store_listings_collected",
            store_name=store_name,
            seller_id=seller_id,
            source=source,
            count=len(items),
        )
        return StoreListing(
            store_url=store_url,
            store_name=store_name,
            seller_id=seller_id,
            items=items,
            source=source,
        )

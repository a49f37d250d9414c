"""Marketplace item adapter: rendered-page scrape with Finding API fallback."""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from listingwatch.config import PLACEHOLDER_CREDENTIALS, settings
from listingwatch.core.exceptions import ExtractionFailed, ListingWatchException, NoProductData
from listingwatch.scrapers.adapters.finding import finding_params, parse_finding_item, search_items
from listingwatch.scrapers.base import BaseAdapter, Snapshot
from listingwatch.scrapers.extraction.engine import ExtractionEngine
from listingwatch.scrapers.extraction.product import extract_item_id
from listingwatch.scrapers.utils.rate_limiter import SourceRateLimiter
from listingwatch.scrapers.utils.retry import retry_with_backoff

FINDING_OPERATION = "findItemsAdvanced"


class MarketplaceAdapter(BaseAdapter):
    """Fetches a listing's current state.

    The rendered page is the primary source. When extraction fails for any
    reason the item id is parsed from the URL and the Finding API is tried
    under retry. Nothing is ever fabricated: if neither path yields a title
    and a positive price the fetch fails.
    """

    source_name = "marketplace"
    adapter_type = "hybrid"

    def __init__(
        self,
        engine: ExtractionEngine,
        rate_limiter: Optional[SourceRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        app_id: Optional[str] = None,
        retry_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(rate_limiter=rate_limiter, transport=transport)
        self.engine = engine
        self.app_id = settings.EBAY_APP_ID if app_id is None else app_id
        self._retry_sleep = retry_sleep

    extract_item_id = staticmethod(extract_item_id)

    @property
    def api_configured(self) -> bool:
        return self.app_id not in PLACEHOLDER_CREDENTIALS

    async def fetch_item(self, url: str) -> Snapshot:
        """Current title, price, stock and images of a listing.

        Raises:
            NoProductData: If both the scrape and the API fallback fail
        """
        await self._throttle()

        try:
            snapshot = await self.engine.extract_product(url)
            if snapshot.is_complete:
                return snapshot
            self.logger.warning("scrape_incomplete", url=url)
        except ListingWatchException as e:
            self.logger.warning("scrape_failed", url=url, error=e.message)
        except Exception as e:
            self.logger.error("scrape_unexpected_error", url=url, error=str(e), exc_info=True)

        item_id = self.extract_item_id(url)
        if not item_id:
            self.logger.warning("item_id_not_found", url=url)
            raise NoProductData(self.source_name, url)
        if not self.api_configured:
            self.logger.info("api_fallback_skipped", reason="app_id_not_configured", item_id=item_id)
            raise NoProductData(self.source_name, url)

        try:
            snapshot = await retry_with_backoff(
                lambda: self._fetch_from_api(item_id),
                max_attempts=settings.MAX_RETRY_ATTEMPTS,
                base_delay=settings.RETRY_BASE_DELAY,
                sleep=self._retry_sleep,
            )
        except ListingWatchException as e:
            self.logger.error("api_fallback_failed", item_id=item_id, error=e.message)
            raise NoProductData(self.source_name, url) from e

        if snapshot is None or not snapshot.is_complete:
            raise NoProductData(self.source_name, url)

        self.logger.info("api_fallback_succeeded", item_id=item_id, price=str(snapshot.price))
        return snapshot

    async def _fetch_from_api(self, item_id: str) -> Optional[Snapshot]:
        params = finding_params(
            FINDING_OPERATION,
            self.app_id,
            **{
                "itemFilter(0).name": "ItemID",
                "itemFilter(0).value": item_id,
                "outputSelector(0)": "SellerInfo",
                "outputSelector(1)": "PictureURLLarge",
            },
        )
        response = await self._http_get(
            settings.ebay_finding_url,
            params=params,
            headers={"Accept": "application/json"},
            timeout=settings.API_REQUEST_TIMEOUT,
        )
        items = search_items(response.json(), FINDING_OPERATION)
        if not items:
            self.logger.info("api_item_not_found", item_id=item_id)
            return None

        fields = parse_finding_item(items[0])
        # Incomplete API data counts as a failed attempt
        if not fields["title"] or not fields["price"]:
            raise ExtractionFailed(item_id, "incomplete item from finding api")

        return Snapshot(
            title=fields["title"],
            price=fields["price"],
            stock_state=fields["stock_state"],
            images=fields["images"],
            item_id=fields["item_id"] or item_id,
            seller_id=fields["seller_id"],
            source="api",
        )

"""Extraction engine: renders pages in the shared browser and runs the
seller, product and listing-set strategy chains over the result."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

import structlog
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError, Page

from listingwatch.config import settings
from listingwatch.core.exceptions import TransientFetchError
from listingwatch.scrapers.base import ListingItem, Snapshot
from listingwatch.scrapers.extraction.listings import (
    find_category_urls,
    find_first_item_url,
    page_url,
    parse_listing_page,
)
from listingwatch.scrapers.extraction.product import parse_product
from listingwatch.scrapers.extraction.seller import resolve_seller
from listingwatch.scrapers.utils.browser_manager import BrowserManager, get_browser_manager

logger = structlog.get_logger(__name__)

# Tried in order until one navigation succeeds
WAIT_STRATEGIES = ("domcontentloaded", "networkidle", "load")


@dataclass
class PageInspection:
    """What one storefront or product page reveals about its seller."""

    url: str
    seller_id: Optional[str] = None
    first_item_url: Optional[str] = None
    category_urls: List[str] = field(default_factory=list)


class ExtractionEngine:
    """Drives the browser and applies the extraction strategy chains."""

    def __init__(
        self,
        browser_manager: Optional[BrowserManager] = None,
        base_url: Optional[str] = None,
        settle_delay: Optional[float] = None,
        page_delay: float = 1.0,
        retry_delay: float = 1.0,
        navigation_timeout_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.browser_manager = browser_manager or get_browser_manager()
        self.base_url = base_url or settings.MARKETPLACE_BASE_URL
        self.settle_delay = settings.PAGE_SETTLE_DELAY if settle_delay is None else settle_delay
        self.page_delay = page_delay
        self.retry_delay = retry_delay
        self.navigation_timeout_ms = navigation_timeout_ms or settings.NAVIGATION_TIMEOUT_MS
        self._sleep = sleep
        self.logger = logger.bind(component="extraction_engine")

    async def navigate(self, page: Page, url: str) -> None:
        """Load ``url``, relaxing the wait condition on each failure.

        Raises:
            TransientFetchError: If every wait strategy fails
        """
        last_error: Optional[Exception] = None
        for attempt, wait_until in enumerate(WAIT_STRATEGIES, start=1):
            try:
                await page.goto(url, wait_until=wait_until, timeout=self.navigation_timeout_ms)
                # JS-rendered fields settle after the load event
                await self._sleep(self.settle_delay)
                return
            except PlaywrightError as e:
                last_error = e
                self.logger.warning(
                    "navigation_failed",
                    url=url,
                    attempt=attempt,
                    wait_until=wait_until,
                    error=str(e),
                )
                if attempt < len(WAIT_STRATEGIES):
                    await self._sleep(self.retry_delay)

        raise TransientFetchError("browser", f"navigation to {url} failed: {last_error}")

    async def render(self, url: str) -> str:
        """Rendered HTML of ``url``."""
        async with self.browser_manager.page() as page:
            await self.navigate(page, url)
            return await page.content()

    async def extract_product(self, url: str) -> Snapshot:
        """Product detail for an item page.

        Raises:
            TransientFetchError: If the page could not be loaded
            ExtractionFailed: If no title or price could be found
        """
        html = await self.render(url)
        snapshot = parse_product(html, url)
        self.logger.info(
            "product_extracted",
            url=url,
            price=str(snapshot.price),
            stock_state=snapshot.stock_state,
            seller_id=snapshot.seller_id,
        )
        return snapshot

    async def extract_seller_identity(self, url: str) -> Optional[str]:
        """Seller identity shown on ``url``, or None when unresolved."""
        html = await self.render(url)
        return resolve_seller(html)

    async def inspect_page(self, url: str) -> PageInspection:
        """Seller identity plus the links a caller can hop to when unresolved."""
        html = await self.render(url)
        soup = BeautifulSoup(html, "html.parser")
        inspection = PageInspection(
            url=url,
            seller_id=resolve_seller(soup),
            first_item_url=find_first_item_url(soup, self.base_url),
            category_urls=find_category_urls(soup, self.base_url, url),
        )
        self.logger.debug(
            "page_inspected",
            url=url,
            seller_id=inspection.seller_id,
            category_links=len(inspection.category_urls),
        )
        return inspection

    async def extract_listings(self, store_url: str, max_pages: Optional[int] = None) -> List[ListingItem]:
        """Paginate a store or search page and collect distinct items.

        Stops at ``max_pages``, or as soon as a page adds no new items. A
        navigation failure on the first page ends pagination; later
        failures skip that page.
        """
        max_pages = max_pages or settings.MAX_LISTING_PAGES
        items: List[ListingItem] = []
        seen = set()

        async with self.browser_manager.page() as page:
            for page_number in range(1, max_pages + 1):
                if page_number > 1:
                    await self._sleep(self.page_delay)

                url = page_url(store_url, page_number)
                try:
                    await self.navigate(page, url)
                    html = await page.content()
                except TransientFetchError as e:
                    self.logger.warning(
                        "listing_page_failed",
                        url=url,
                        page=page_number,
                        error=e.message,
                    )
                    if page_number == 1:
                        break
                    continue

                new_items = [
                    item for item in parse_listing_page(html, self.base_url)
                    if item.item_id not in seen
                ]
                if not new_items:
                    break
                for item in new_items:
                    seen.add(item.item_id)
                    items.append(item)

                self.logger.info(
                    "listing_page_extracted",
                    url=url,
                    page=page_number,
                    new_items=len(new_items),
                    total=len(items),
                )

        return items

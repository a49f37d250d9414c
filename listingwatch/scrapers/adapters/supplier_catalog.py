"""Wholesale supplier catalog lookup used to map imported items to a supplier."""

import asyncio
import re
from typing import Awaitable, Callable, Optional
from urllib.parse import quote_plus

import httpx
from bs4 import BeautifulSoup

from listingwatch.config import settings
from listingwatch.core.exceptions import ListingWatchException
from listingwatch.scrapers.base import BaseAdapter, SupplierMatch
from listingwatch.scrapers.utils.normalizer import PriceNormalizer, absolute_url, classify_stock
from listingwatch.scrapers.utils.rate_limiter import SourceRateLimiter
from listingwatch.scrapers.utils.retry import retry_with_backoff

# Search term -> title keywords that select it
SUPPLIER_KEYWORDS = {
    "koka": ("koka", "noodle", "instant noodle"),
    "lindor": ("lindor", "lindt", "chocolate ball"),
    "haribo": ("haribo", "gummy", "gummies", "sweet", "candy"),
    "kleenex": ("kleenex", "tissue", "facial tissue"),
    "swizzels": ("swizzels", "drumstick", "lolly", "lollipop"),
    "household": ("household", "cleaning", "detergent"),
    "snacks": ("snack", "crisp", "chips"),
    "drinks": ("drink", "beverage", "juice", "soda"),
}

PRODUCT_LINK_SELECTOR = '.product-item a, .product-card a, a[href*="/product/"]'
PRICE_SELECTORS = ('[itemprop="price"]', ".price", '[class*="price"]')
SKU_SELECTOR = '.sku, [class*="sku"], [itemprop="sku"]'


def extract_search_term(title: str) -> str:
    """Catalog search term for a marketplace title.

    Known keyword sets map to a fixed term; anything else searches by the
    first three title words.
    """
    lowered = (title or "").lower()
    for term, keywords in SUPPLIER_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            return term
    words = re.findall(r"[\w'-]+", lowered)
    return " ".join(words[:3])


class SupplierCatalog(BaseAdapter):
    """Searches the wholesale catalog and reads the first matching product."""

    source_name = "supplier_catalog"
    adapter_type = "scraper"

    def __init__(
        self,
        rate_limiter: Optional[SourceRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: Optional[str] = None,
        retry_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(rate_limiter=rate_limiter, transport=transport)
        self.base_url = (base_url or settings.SUPPLIER_CATALOG_URL).rstrip("/")
        self._retry_sleep = retry_sleep

    extract_search_term = staticmethod(extract_search_term)

    async def _get_html(self, url: str) -> str:
        await self._throttle()
        response = await retry_with_backoff(
            lambda: self._http_get(url, timeout=settings.SUPPLIER_REQUEST_TIMEOUT),
            sleep=self._retry_sleep,
        )
        return response.text

    async def find_match(self, title: str) -> Optional[SupplierMatch]:
        """First catalog product for ``title``, or None when nothing matched."""
        term = self.extract_search_term(title)
        if not term:
            return None

        search_url = f"{self.base_url}/search?w={quote_plus(term)}"
        try:
            search_html = await self._get_html(search_url)
            link = BeautifulSoup(search_html, "html.parser").select_one(PRODUCT_LINK_SELECTOR)
            product_url = absolute_url(link.get("href"), self.base_url) if link else None
            if not product_url:
                self.logger.info("catalog_no_results", term=term)
                return None

            product_html = await self._get_html(product_url)
        except ListingWatchException as e:
            self.logger.warning("catalog_lookup_failed", term=term, error=e.message)
            return None

        soup = BeautifulSoup(product_html, "html.parser")
        price = None
        for selector in PRICE_SELECTORS:
            element = soup.select_one(selector)
            if element:
                price = PriceNormalizer.extract_price_from_text(
                    element.get("content") or element.get_text(" ", strip=True)
                )
                if price:
                    break

        if not price:
            self.logger.info("catalog_match_without_price", term=term, url=product_url)
            return None

        sku_element = soup.select_one(SKU_SELECTOR)
        heading = soup.select_one("h1")
        match = SupplierMatch(
            url=product_url,
            price=price,
            stock_state=classify_stock((soup.body or soup).get_text(" ", strip=True), default="unknown"),
            sku=(sku_element.get("content") or sku_element.get_text(strip=True)) if sku_element else None,
            title=heading.get_text(" ", strip=True) if heading else None,
        )
        self.logger.info("catalog_match_found", term=term, url=product_url, price=str(price))
        return match

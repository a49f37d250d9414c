"""Supplier page adapter (AliExpress, Amazon, Alibaba and generic shops).

Supplier pages are fetched over plain HTTP and parsed with per-supplier
selector profiles. Calls are rate limited per supplier name and retried
with exponential backoff.
"""

import asyncio
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import httpx
from bs4 import BeautifulSoup

from listingwatch.config import settings
from listingwatch.core.exceptions import NoProductData, SupplierTitleInvalid
from listingwatch.scrapers.base import BaseAdapter, Snapshot
from listingwatch.scrapers.utils.normalizer import PriceNormalizer, absolute_url, classify_stock
from listingwatch.scrapers.utils.rate_limiter import SourceRateLimiter
from listingwatch.scrapers.utils.retry import retry_with_backoff

MAX_SUPPLIER_IMAGES = 5
MIN_TITLE_LENGTH = 3


def detect_supplier(url: str) -> str:
    """Supplier name from a URL: aliexpress, amazon, alibaba or generic."""
    lowered = (url or "").lower()
    if "aliexpress" in lowered:
        return "aliexpress"
    if "amazon." in lowered:
        return "amazon"
    if "alibaba" in lowered:
        return "alibaba"
    return "generic"


# Stock parsers

def _aliexpress_stock(soup: BeautifulSoup) -> str:
    tip = soup.select_one('.product-quantity-tip, [class*="quantity--info"]')
    if not tip:
        return "in_stock"
    text = tip.get_text(" ", strip=True).lower()
    if "sold out" in text:
        return "out_of_stock"
    if "only" in text or re.search(r"\d+\s+pieces? available", text):
        return "low_stock"
    return "in_stock"


def _amazon_stock(soup: BeautifulSoup) -> str:
    availability = soup.select_one("#availability")
    if not availability:
        return "in_stock"
    return classify_stock(availability.get_text(" ", strip=True), default="in_stock")


def _generic_stock(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    return classify_stock(body.get_text(" ", strip=True), default="unknown")


# Image parsers

def _aliexpress_images(soup: BeautifulSoup, url: str) -> List[str]:
    return [
        src for src in _image_sources(soup, url)
        if "alicdn" in src or "ae01" in src
    ]


def _amazon_images(soup: BeautifulSoup, url: str) -> List[str]:
    images = []
    landing = soup.select_one("#landingImage")
    if landing and landing.get("data-old-hires"):
        images.append(landing["data-old-hires"])
    for img in soup.select("#altImages img"):
        src = img.get("src")
        if not src:
            continue
        # Drop the thumbnail size suffix, e.g. "._AC_US40_."
        images.append(re.sub(r"\._[^.]*_\.", ".", src))
    return images


def _image_sources(soup: BeautifulSoup, url: str) -> List[str]:
    sources = []
    for img in soup.find_all("img"):
        src = absolute_url(img.get("src") or img.get("data-src"), url)
        if src:
            sources.append(src)
    return sources


@dataclass(frozen=True)
class SupplierProfile:
    """Selector lists and stock/image parsers for one supplier."""

    name: str
    title_selectors: Tuple[str, ...]
    price_selectors: Tuple[str, ...]
    stock: Callable[[BeautifulSoup], str]
    images: Callable[[BeautifulSoup, str], List[str]]

    def parse(self, html: str, url: str) -> Snapshot:
        """Parse a supplier page.

        Raises:
            SupplierTitleInvalid: If the title is shorter than 3 characters
        """
        soup = BeautifulSoup(html, "html.parser")

        title = self._title(soup)
        if len(title) < MIN_TITLE_LENGTH:
            raise SupplierTitleInvalid(url, title)

        images: List[str] = []
        for src in self.images(soup, url):
            if src not in images:
                images.append(src)

        return Snapshot(
            title=title[:500],
            price=self._price(soup) or Decimal("0"),
            stock_state=self.stock(soup),
            images=images[:MAX_SUPPLIER_IMAGES],
            source="scrape",
        )

    def _title(self, soup: BeautifulSoup) -> str:
        for selector in self.title_selectors:
            element = soup.select_one(selector)
            if element:
                text = element.get("content") if element.name == "meta" else element.get_text(" ", strip=True)
                if text and text.strip():
                    return text.strip()
        return ""

    def _price(self, soup: BeautifulSoup) -> Optional[Decimal]:
        for selector in self.price_selectors:
            for element in soup.select(selector):
                price = PriceNormalizer.extract_price_from_text(
                    element.get("content") or element.get_text(" ", strip=True)
                )
                if price:
                    return price
        return None


GENERIC_PROFILE = SupplierProfile(
    name="generic",
    title_selectors=("h1", 'meta[property="og:title"]', "title", '[itemprop="name"]'),
    price_selectors=('[itemprop="price"]', ".price", '[class*="price"]'),
    stock=_generic_stock,
    images=_image_sources,
)

SUPPLIER_PROFILES: Dict[str, SupplierProfile] = {
    "aliexpress": SupplierProfile(
        name="aliexpress",
        title_selectors=(".product-title-text", "h1.product-name", '[data-pl="product-title"]', "h1"),
        price_selectors=(
            ".product-price-value",
            ".uniform-banner-box-price",
            '[class*="price--current"]',
            '[itemprop="price"]',
        ),
        stock=_aliexpress_stock,
        images=_aliexpress_images,
    ),
    "amazon": SupplierProfile(
        name="amazon",
        title_selectors=("#productTitle", "h1"),
        price_selectors=(
            ".a-price .a-offscreen",
            "#corePrice_feature_div .a-offscreen",
            "#priceblock_ourprice",
            "#priceblock_dealprice",
        ),
        stock=_amazon_stock,
        images=_amazon_images,
    ),
    # Alibaba pages are parsed with the generic profile
    "alibaba": GENERIC_PROFILE,
    "generic": GENERIC_PROFILE,
}


class SupplierAdapter(BaseAdapter):
    """Fetches the supplier's current price and stock for an item."""

    source_name = "supplier"
    adapter_type = "scraper"

    def __init__(
        self,
        rate_limiter: Optional[SourceRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(rate_limiter=rate_limiter, transport=transport)
        self._retry_sleep = retry_sleep

    detect_supplier = staticmethod(detect_supplier)

    async def fetch(self, url: str) -> Snapshot:
        """Fetch and parse a supplier page.

        Raises:
            NoProductData: If the URL is empty or the last attempt showed no price
            SupplierTitleInvalid: If the last attempt found a too-short title
            TransientFetchError: If the last HTTP attempt failed
        """
        if not url:
            raise NoProductData(self.source_name, "empty url")

        supplier = self.detect_supplier(url)
        await self._throttle(supplier)

        self.logger.info("supplier_fetch", supplier=supplier, url=url)
        snapshot = await retry_with_backoff(
            lambda: self._fetch_and_parse(supplier, url),
            max_attempts=settings.MAX_RETRY_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            sleep=self._retry_sleep,
        )

        self.logger.info(
            "supplier_fetched",
            supplier=supplier,
            price=str(snapshot.price),
            stock_state=snapshot.stock_state,
        )
        return snapshot

    async def _fetch_and_parse(self, supplier: str, url: str) -> Snapshot:
        # One attempt: a short title or missing price fails the attempt
        response = await self._http_get(
            url,
            timeout=settings.SUPPLIER_REQUEST_TIMEOUT,
            source=supplier,
        )
        profile = SUPPLIER_PROFILES.get(supplier, GENERIC_PROFILE)
        snapshot = profile.parse(response.text, url)
        if snapshot.price <= 0:
            self.logger.warning("supplier_price_missing", supplier=supplier, url=url)
            raise NoProductData(supplier, url)
        return snapshot

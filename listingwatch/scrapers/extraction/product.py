"""Product detail extraction from a rendered marketplace item page."""

import re
from typing import List, Optional

from bs4 import BeautifulSoup

from listingwatch.core.exceptions import ExtractionFailed
from listingwatch.scrapers.base import Snapshot
from listingwatch.scrapers.extraction.seller import resolve_seller
from listingwatch.scrapers.extraction.strategies import Strategy, StrategyChain, select_attrs, select_texts
from listingwatch.scrapers.utils.normalizer import PriceNormalizer, classify_stock, is_thumbnail

MAX_IMAGES = 10

ITEM_ID_PATTERNS = (
    re.compile(r"/itm/(?:[^/?#]+/)?(\d+)(?:[/?#]|$)"),
    re.compile(r"[?&]item=(\d+)"),
    re.compile(r"/p/(\d+)"),
)

TITLE_SELECTORS = (
    "h1.x-item-title__mainTitle",
    '[data-testid="x-item-title-label"]',
    ".it-ttl",
    'h1[itemprop="name"]',
    "h1",
)

PRICE_SELECTORS = (
    ".x-price-primary .ux-textspans",
    '[data-testid="x-price-primary"]',
    "#prcIsum",
    '[itemprop="price"]',
)

AVAILABILITY_SELECTORS = (
    ".d-quantity__availability",
    '[data-testid="x-quantity"]',
    "#qtySubTxt",
    ".x-quantity__availability",
)

DESCRIPTION_SELECTORS = (
    "#desc_wrapper_ctr",
    "#viTabs_0_is",
    ".u-flL.condText",
    '[itemprop="description"]',
    '[data-testid="x-item-condition-text"]',
    ".x-item-condition-value",
    ".notranslate",
)

VARIATION_SELECTORS = (
    ".msku-sel select, "
    'select[name*="Size"], select[name*="Color"], select[name*="Colour"], '
    'select[name*="Variation"], select[data-testid*="variation"]'
)

TITLE_SUFFIX = re.compile(r"\s*\|\s*eBay.*$", re.I)


def extract_item_id(url: str) -> Optional[str]:
    """Marketplace listing id from an item URL, or None."""
    if not url:
        return None
    for pattern in ITEM_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def _document_title(soup: BeautifulSoup):
    if soup.title and soup.title.string:
        yield TITLE_SUFFIX.sub("", soup.title.string)


title_chain = StrategyChain(
    name="product_title",
    strategies=[
        Strategy("title_selectors", select_texts(*TITLE_SELECTORS)),
        Strategy("document_title", _document_title),
    ],
    clean=lambda s: re.sub(r"^Details about\s+", "", s.strip()).strip(),
)


def _price_candidates(soup: BeautifulSoup):
    for selector in PRICE_SELECTORS:
        for element in soup.select(selector):
            yield element.get("content") or element.get_text(" ", strip=True)


def _is_positive_price(text: str) -> bool:
    price = PriceNormalizer.extract_price_from_text(text)
    return price is not None and price > 0


price_chain = StrategyChain(
    name="product_price",
    strategies=[Strategy("price_selectors", _price_candidates)],
    accept=_is_positive_price,
)

description_chain = StrategyChain(
    name="product_description",
    strategies=[Strategy("description_selectors", select_texts(*DESCRIPTION_SELECTORS))],
)


def extract_stock_state(soup: BeautifulSoup) -> str:
    """Availability widget text first, then the whole page body."""
    for selector in AVAILABILITY_SELECTORS:
        element = soup.select_one(selector)
        if element:
            return classify_stock(element.get_text(" ", strip=True))
    body = soup.body or soup
    return classify_stock(body.get_text(" ", strip=True))


def extract_images(soup: BeautifulSoup) -> List[str]:
    images: List[str] = []
    extractor = select_attrs(
        'img[src*="i.ebayimg.com"], img[data-zoom-src], img[data-testid*="image"]',
        "data-zoom-src",
        "src",
        "data-src",
    )
    for src in extractor(soup):
        if src.startswith("//"):
            src = "https:" + src
        if not src.startswith("http") or is_thumbnail(src) or src in images:
            continue
        images.append(src)
        if len(images) >= MAX_IMAGES:
            break
    return images


def extract_variations(soup: BeautifulSoup) -> List[dict]:
    variations = []
    for select in soup.select(VARIATION_SELECTORS):
        options = [
            option.get_text(strip=True)
            for option in select.find_all("option")
            if option.get("value", "").strip() not in ("", "0", "-1")
        ]
        if not options:
            continue
        name = select.get("name") or select.get("aria-label") or select.get("id") or "Option"
        variations.append({"name": name, "options": options})
    return variations


def parse_product(html: str, url: str) -> Snapshot:
    """Parse a rendered item page into a Snapshot.

    Raises:
        ExtractionFailed: If the title is empty or no positive price is found
    """
    soup = BeautifulSoup(html, "html.parser")

    title = title_chain.resolve(soup)
    if not title:
        raise ExtractionFailed(url, "no title")

    price_text = price_chain.resolve(soup)
    price = PriceNormalizer.extract_price_from_text(price_text) if price_text else None
    if not price:
        raise ExtractionFailed(url, "no price")

    description = description_chain.resolve(soup)

    return Snapshot(
        title=title[:500],
        price=price,
        stock_state=extract_stock_state(soup),
        images=extract_images(soup),
        item_id=extract_item_id(url),
        seller_id=resolve_seller(soup),
        description=description[:5000] if description else None,
        variations=extract_variations(soup),
        source="scrape",
    )

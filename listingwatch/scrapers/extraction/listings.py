"""Listing-set extraction from store and search result pages."""

import re
from typing import List, Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from bs4 import BeautifulSoup, Tag

from listingwatch.scrapers.base import ListingItem
from listingwatch.scrapers.extraction.product import extract_item_id
from listingwatch.scrapers.utils.normalizer import (
    PriceNormalizer,
    absolute_url,
    classify_stock,
    normalize_url,
)

CARD_CLASS_PATTERN = re.compile(r"s-item|item|listing|card", re.I)
PLACEHOLDER_TITLES = {"shop on ebay", "new listing"}


def page_url(store_url: str, page_number: int) -> str:
    """Store URL for a given results page (``_pgn`` query parameter)."""
    if page_number <= 1:
        return store_url
    parsed = urlparse(store_url)
    query = parse_qs(parsed.query)
    query["_pgn"] = [str(page_number)]
    return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))


def _card_for(anchor: Tag) -> Tag:
    card = anchor.find_parent(
        lambda tag: isinstance(tag, Tag)
        and tag.name in ("li", "div", "article", "section")
        and any(CARD_CLASS_PATTERN.search(c) for c in tag.get("class", []))
    )
    return card or anchor


def _card_title(card: Tag, anchor: Tag) -> Optional[str]:
    for selector in (".s-item__title", '[class*="title"]', "h3"):
        element = card.select_one(selector)
        if element:
            text = element.get_text(" ", strip=True)
            if text and text.lower() not in PLACEHOLDER_TITLES:
                return text
    text = anchor.get_text(" ", strip=True)
    return text or None


def _card_price(card: Tag):
    for selector in (".s-item__price", '[class*="price"]'):
        element = card.select_one(selector)
        if element:
            price = PriceNormalizer.extract_price_from_text(element.get_text(" ", strip=True))
            if price:
                return price
    return None


def _card_image(card: Tag, base_url: str) -> List[str]:
    img = card.find("img")
    if not img:
        return []
    src = absolute_url(img.get("src") or img.get("data-src"), base_url)
    return [src] if src else []


def parse_listing_page(html: str, base_url: str) -> List[ListingItem]:
    """Every distinct item linked from one results page.

    Card-level fields are best effort; the item id and canonical URL are
    always present.
    """
    soup = BeautifulSoup(html, "html.parser")
    items: List[ListingItem] = []
    seen = set()

    for anchor in soup.select('a[href*="/itm/"]'):
        href = absolute_url(anchor.get("href"), base_url)
        item_id = extract_item_id(href or "")
        if not item_id or item_id in seen:
            continue

        card = _card_for(anchor)
        title = _card_title(card, anchor)
        if title and title.lower() in PLACEHOLDER_TITLES:
            continue
        seen.add(item_id)

        card_text = card.get_text(" ", strip=True)
        items.append(
            ListingItem(
                item_id=item_id,
                url=f"{base_url.rstrip('/')}/itm/{item_id}",
                title=title or f"Item {item_id}",
                price=_card_price(card),
                images=_card_image(card, base_url),
                stock_state=classify_stock(card_text, default="unknown"),
            )
        )

    return items


def find_first_item_url(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    for anchor in soup.select('a[href*="/itm/"]'):
        href = absolute_url(anchor.get("href"), base_url)
        if href and extract_item_id(href):
            return normalize_url(href)
    return None


def find_category_urls(soup: BeautifulSoup, base_url: str, store_url: str, limit: int = 3) -> List[str]:
    """Store sub-pages (``/str/<store>/<category>``) other than the storefront."""
    urls: List[str] = []
    current = store_url.rstrip("/")
    for anchor in soup.select('a[href*="/str/"]'):
        href = absolute_url(anchor.get("href"), base_url)
        if not href or href.rstrip("/") == current or href in urls:
            continue
        if urlparse(href).path.rstrip("/").count("/") < 3:
            continue
        urls.append(href)
        if len(urls) >= limit:
            break
    return urls

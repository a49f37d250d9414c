"""Data normalization utilities for prices, stock text and URLs."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse

_PRICE_NUMBER = re.compile(r"\d[\d,]*(?:\.\d+)?")
_CURRENCY_NOISE = re.compile(r"GBP|USD|EUR|[£$€,\s]")

# Query parameters marketplaces and ad networks append for click tracking
TRACKING_PARAMS = frozenset({
    "_trkparms", "_trksid", "hash", "mkevt", "mkcid", "mkrid", "campid",
    "fbclid", "gclid", "utm_source", "utm_medium", "utm_campaign",
    "utm_content", "utm_term",
})


class PriceNormalizer:
    """Price parsing for the text shapes marketplaces and suppliers render."""

    @staticmethod
    def clean_price_string(raw: str) -> Optional[Decimal]:
        """Parse one price token such as "£1,234.50" or "US $12.99".

        Returns:
            Decimal value, or None if nothing numeric remains
        """
        if not raw:
            return None
        cleaned = re.sub(r"[^\d.]", "", _CURRENCY_NOISE.sub("", raw))
        if not cleaned:
            return None
        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return None

    @staticmethod
    def extract_price_from_text(text: str) -> Optional[Decimal]:
        """First positive price in free text.

        Price ranges such as "£5.99 to £9.99" resolve to the lower bound.
        """
        if not text:
            return None
        for token in _PRICE_NUMBER.findall(text):
            price = PriceNormalizer.clean_price_string(token)
            if price and price > 0:
                return price
        return None


_OUT_OF_STOCK = re.compile(r"out of stock|sold out|no longer available|currently unavailable", re.I)
_LOW_STOCK = re.compile(r"only \d+ left|limited (?:stock|quantity)|\blimited\b|last one", re.I)
_IN_STOCK = re.compile(r"in stock|available|add to (?:basket|cart)", re.I)


def classify_stock(text: str, default: str = "in_stock") -> str:
    """Map free availability text to a stock state.

    Args:
        text: Visible page or availability-widget text
        default: State returned when no keyword matches

    Returns:
        One of in_stock, out_of_stock, low_stock, unknown
    """
    if not text:
        return default
    if _OUT_OF_STOCK.search(text):
        return "out_of_stock"
    if _LOW_STOCK.search(text):
        return "low_stock"
    if default == "unknown" and _IN_STOCK.search(text):
        return "in_stock"
    return default


def stock_from_quantity(quantity: Optional[int], sold: Optional[int] = 0) -> str:
    """Stock state from listed quantity minus quantity sold."""
    if quantity is None:
        return "unknown"
    available = quantity - (sold or 0)
    if available <= 0:
        return "out_of_stock"
    if available < 5:
        return "low_stock"
    return "in_stock"


def absolute_url(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve relative and protocol-relative links; drop data: URIs."""
    if not href:
        return None
    href = href.strip()
    if href.startswith("data:") or href.startswith("javascript:"):
        return None
    if href.startswith("//"):
        return "https:" + href
    return urljoin(base_url, href)


_THUMBNAIL_MARKERS = ("s-l64", "s-l140")


def is_thumbnail(url: str) -> bool:
    return any(marker in url for marker in _THUMBNAIL_MARKERS)


def normalize_url(url: str) -> str:
    """Drop tracking query parameters and the fragment from a URL."""
    if not url:
        return url
    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in TRACKING_PARAMS]
    return parsed._replace(query=urlencode(query), fragment="").geturl()

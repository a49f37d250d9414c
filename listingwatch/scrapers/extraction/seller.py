"""Seller identity resolution over a rendered marketplace page.

Sellers are surfaced in many places depending on page type and layout
revision, so five strategies run in order and the first plausible
candidate wins.
"""

import json
import re
from typing import Iterable, List, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup

from listingwatch.config import settings
from listingwatch.scrapers.extraction.strategies import Strategy, StrategyChain, select_texts

MAX_SELLER_LENGTH = 50

# Dotted paths tried inside every JSON-LD object, in priority order
JSON_LD_PATHS = (
    ("seller", "username"),
    ("seller", "name"),
    ("mainEntity", "seller", "name"),
    ("offers", "seller", "name"),
    ("seller", "identifier"),
    ("author", "name"),
    ("brand", "name"),
)

SELLER_SELECTORS = (
    'a.mbg-id span, .mbg-id span, a[class*="mbg-id"] span',
    "a.mbg-id, .mbg-id",
    "a.mbg-nw, .mbg-nw",
    '.x-sellercard-atf__info__about-seller a span, [data-testid="str-title"] a',
    '.seller-info-name, [class*="seller-info-name"]',
    '.str-seller-info, [class*="seller-info"]',
)

SCRIPT_PATTERNS = (
    re.compile(r'"sellerName"\s*:\s*"([^"]+)"'),
    re.compile(r'"sellerUsername"\s*:\s*"([^"]+)"'),
    re.compile(r'"sellerId"\s*:\s*"([^"]+)"'),
    re.compile(r'"seller"\s*:\s*\{[^{}]*?"(?:username|name|id)"\s*:\s*"([^"]+)"'),
    re.compile(r'"username"\s*:\s*"([^"]+)"'),
    re.compile(r"""sellerName\s*[:=]\s*['"]([^'"]+)['"]"""),
    re.compile(r"""sellerId\s*[:=]\s*['"]([^'"]+)['"]"""),
)

PROFILE_LINK_PATTERN = re.compile(r"/(?:usr|str)/([^/?#]+)")
TWITTER_HANDLE_PATTERN = re.compile(r"""@?([^"'\s,]+)""")


def clean_candidate(raw: str) -> str:
    return raw.strip().strip("\"'}").strip()


def is_plausible_seller(candidate: Optional[str], brands: Optional[List[str]] = None) -> bool:
    """Reject empty values, the platform's own brand, URLs and overlong text."""
    if not candidate:
        return False
    if brands is None:
        brands = settings.get_platform_brands()
    if candidate.lower() in brands:
        return False
    if len(candidate) > MAX_SELLER_LENGTH:
        return False
    if "http" in candidate.lower():
        return False
    return True


def _walk_json_ld(data) -> Iterable[dict]:
    if isinstance(data, list):
        for entry in data:
            yield from _walk_json_ld(entry)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _walk_json_ld(data["@graph"])


def _dig(obj, path):
    for key in path:
        if isinstance(obj, list):
            obj = obj[0] if obj else None
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj if isinstance(obj, str) else None


def _from_json_ld(soup: BeautifulSoup) -> Iterable[str]:
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except ValueError:
            continue
        for obj in _walk_json_ld(data):
            for path in JSON_LD_PATHS:
                value = _dig(obj, path)
                if value:
                    yield value


def _from_twitter_meta(soup: BeautifulSoup) -> Iterable[str]:
    meta = soup.find("meta", attrs={"name": "twitter:creator"})
    if meta and meta.get("content"):
        match = TWITTER_HANDLE_PATTERN.search(meta["content"])
        if match:
            yield match.group(1)


def _from_inline_scripts(soup: BeautifulSoup) -> Iterable[str]:
    bodies = [
        script.string or script.get_text()
        for script in soup.find_all("script")
        if script.get("type") != "application/ld+json"
    ]
    for pattern in SCRIPT_PATTERNS:
        for body in bodies:
            if not body:
                continue
            for match in pattern.finditer(body):
                yield re.sub(r"[\"'}\s]", "", match.group(1))


def _from_profile_links(soup: BeautifulSoup) -> Iterable[str]:
    for link in soup.select('a[href*="/usr/"], a[href*="/str/"]'):
        match = PROFILE_LINK_PATTERN.search(link.get("href", ""))
        if match:
            yield unquote(match.group(1))


def build_seller_chain(brands: Optional[List[str]] = None) -> StrategyChain:
    """Seller identity chain, optionally with a custom platform brand list."""
    brand_list = [b.lower() for b in brands] if brands is not None else None
    return StrategyChain(
        name="seller_identity",
        strategies=[
            Strategy("json_ld", _from_json_ld),
            Strategy("twitter_meta", _from_twitter_meta),
            Strategy("dom_selectors", select_texts(*SELLER_SELECTORS)),
            Strategy("inline_scripts", _from_inline_scripts),
            Strategy("profile_links", _from_profile_links),
        ],
        accept=lambda c: is_plausible_seller(c, brand_list),
        clean=clean_candidate,
    )


def resolve_seller(html_or_soup, brands: Optional[List[str]] = None) -> Optional[str]:
    """Seller identity from a page, or None when unresolved."""
    soup = (
        html_or_soup
        if isinstance(html_or_soup, BeautifulSoup)
        else BeautifulSoup(html_or_soup, "html.parser")
    )
    return build_seller_chain(brands).resolve(soup)

"""Competitor search adapter over the marketplace Browse API."""

import asyncio
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from listingwatch.config import settings
from listingwatch.core.exceptions import TransientFetchError
from listingwatch.scrapers.base import (
    BaseAdapter,
    CompetitorInsights,
    CompetitorListing,
    CompetitorSummary,
)
from listingwatch.scrapers.utils.credentials import TokenCache
from listingwatch.scrapers.utils.rate_limiter import SourceRateLimiter
from listingwatch.scrapers.utils.retry import retry_with_backoff

SEARCH_LIMIT = 20
MAX_COMPETITORS = 10
QUERY_WORDS = 5


def build_query(title: str) -> str:
    """First five words of the title with punctuation removed."""
    words = re.sub(r"[^\w\s]", " ", title or "").split()
    return " ".join(words[:QUERY_WORDS])


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class CompetitorAdapter(BaseAdapter):
    """Finds cheaper competing listings for the same product."""

    source_name = "competitor"
    adapter_type = "api"

    def __init__(
        self,
        token_cache: TokenCache,
        rate_limiter: Optional[SourceRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        browse_url: Optional[str] = None,
        retry_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(rate_limiter=rate_limiter, transport=transport)
        self.token_cache = token_cache
        self.browse_url = (browse_url or settings.ebay_browse_url).rstrip("/")
        self._retry_sleep = retry_sleep

    build_query = staticmethod(build_query)

    async def fetch_insights(
        self,
        title: str,
        our_price: Optional[Decimal] = None,
        own_item_id: Optional[str] = None,
    ) -> Optional[CompetitorInsights]:
        """Cheapest competing offers for ``title``, excluding our own listing.

        Returns:
            CompetitorInsights, or None when no competitor was found

        Raises:
            CredentialsNotConfigured: If API credentials are missing
            TransientFetchError: If the search failed after retries
        """
        query = self.build_query(title)
        if not query:
            return None

        data = await retry_with_backoff(
            lambda: self._search(query),
            max_attempts=settings.MAX_RETRY_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            retry_on=(TransientFetchError,),
            sleep=self._retry_sleep,
        )

        listings = self._parse_listings(data.get("itemSummaries", []), own_item_id)
        if not listings:
            self.logger.info("no_competitors_found", query=query)
            return None

        listings.sort(key=lambda listing: listing.price)
        listings = listings[:MAX_COMPETITORS]
        lowest = listings[0]

        summary = CompetitorSummary(
            lowest_price=lowest.price,
            seller_name=lowest.seller_name,
            listing_id=lowest.listing_id,
            url=lowest.url,
            total_sellers=len(listings),
            difference_to_our_price=(our_price - lowest.price) if our_price is not None else None,
            our_price=our_price,
        )
        self.logger.info(
            "competitors_found",
            query=query,
            count=len(listings),
            lowest_price=str(lowest.price),
        )
        return CompetitorInsights(listings=listings, summary=summary)

    async def _search(self, query: str) -> Dict[str, Any]:
        token = await self.token_cache.get_token()
        await self._throttle()
        try:
            response = await self._http_get(
                f"{self.browse_url}/item_summary/search",
                params={
                    "q": query,
                    "limit": str(SEARCH_LIMIT),
                    "filter": "deliveryCountry:GB",
                    "sort": "price",
                },
                headers={
                    "Authorization": f"Bearer {token}",
                    "X-EBAY-C-MARKETPLACE-ID": settings.EBAY_MARKETPLACE_ID,
                    "Accept": "application/json",
                },
            )
        except TransientFetchError as e:
            if e.status_code == 401:
                # Token revoked upstream; the next attempt fetches a new one
                self.token_cache.invalidate()
            raise
        return response.json()

    def _parse_listings(self, summaries: List[dict], own_item_id: Optional[str]) -> List[CompetitorListing]:
        listings = []
        for summary in summaries:
            listing_id = str(summary.get("legacyItemId") or summary.get("itemId") or "")
            if own_item_id and (listing_id == own_item_id or own_item_id in listing_id):
                continue
            price = _decimal((summary.get("price") or {}).get("value"))
            if not listing_id or price is None or price <= 0:
                continue
            shipping_options = summary.get("shippingOptions") or [{}]
            listings.append(
                CompetitorListing(
                    listing_id=listing_id,
                    title=summary.get("title", ""),
                    price=price,
                    seller_name=(summary.get("seller") or {}).get("username"),
                    url=summary.get("itemWebUrl"),
                    shipping_cost=_decimal((shipping_options[0].get("shippingCost") or {}).get("value")),
                    condition=summary.get("condition"),
                )
            )
        return listings

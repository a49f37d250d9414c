"""Base adapter plumbing and the normalized data structures adapters return.

Every source adapter inherits from BaseAdapter, which carries the injected
rate limiter, the optional httpx transport (tests pass a MockTransport) and
the HTTP helpers that turn transport failures into TransientFetchError.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import structlog

from listingwatch.config import settings
from listingwatch.core.exceptions import RateLimitError, TransientFetchError
from listingwatch.models.monitored_item import STOCK_STATES
from listingwatch.scrapers.utils.rate_limiter import SourceRateLimiter
from listingwatch.scrapers.utils.user_agents import browser_headers


@dataclass
class Snapshot:
    """Point-in-time observation of one listing from one source."""

    title: str
    price: Decimal
    stock_state: str = "unknown"
    images: List[str] = field(default_factory=list)
    item_id: Optional[str] = None
    seller_id: Optional[str] = None
    description: Optional[str] = None
    variations: List[dict] = field(default_factory=list)
    source: str = "scrape"  # 'scrape' or 'api'

    def __post_init__(self):
        """Validate data after initialization."""
        if self.stock_state not in STOCK_STATES:
            raise ValueError(f"Invalid stock_state: {self.stock_state}")
        if self.price is None or self.price < 0:
            raise ValueError("price must be a non-negative Decimal")

    @property
    def is_complete(self) -> bool:
        return bool(self.title) and self.price > 0


@dataclass
class ListingItem:
    """One entry of a seller's listing set."""

    item_id: str
    url: str
    title: str
    price: Optional[Decimal] = None
    images: List[str] = field(default_factory=list)
    stock_state: str = "unknown"
    condition: Optional[str] = None
    quantity: Optional[int] = None

    def __post_init__(self):
        if not self.item_id:
            raise ValueError("item_id is required")
        if self.stock_state not in STOCK_STATES:
            raise ValueError(f"Invalid stock_state: {self.stock_state}")


@dataclass
class CompetitorListing:
    """A competing offer for the same product."""

    listing_id: str
    title: str
    price: Decimal
    seller_name: Optional[str] = None
    url: Optional[str] = None
    shipping_cost: Optional[Decimal] = None
    condition: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "listing_id": self.listing_id,
            "title": self.title,
            "price": str(self.price),
            "seller_name": self.seller_name,
            "url": self.url,
            "shipping_cost": str(self.shipping_cost) if self.shipping_cost is not None else None,
            "condition": self.condition,
        }


@dataclass
class CompetitorSummary:
    """Cheapest competing offer, compared with our own price."""

    lowest_price: Decimal
    seller_name: Optional[str]
    listing_id: str
    url: Optional[str]
    total_sellers: int
    difference_to_our_price: Optional[Decimal] = None
    our_price: Optional[Decimal] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lowest_price": str(self.lowest_price),
            "seller_name": self.seller_name,
            "listing_id": self.listing_id,
            "url": self.url,
            "total_sellers": self.total_sellers,
            "difference_to_our_price": (
                str(self.difference_to_our_price)
                if self.difference_to_our_price is not None else None
            ),
            "our_price": str(self.our_price) if self.our_price is not None else None,
            "checked_at": self.checked_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["CompetitorSummary"]:
        if not data or data.get("lowest_price") is None:
            return None

        def _decimal(value):
            return Decimal(str(value)) if value is not None else None

        checked_at = data.get("checked_at")
        return cls(
            lowest_price=Decimal(str(data["lowest_price"])),
            seller_name=data.get("seller_name"),
            listing_id=data.get("listing_id", ""),
            url=data.get("url"),
            total_sellers=int(data.get("total_sellers", 0)),
            difference_to_our_price=_decimal(data.get("difference_to_our_price")),
            our_price=_decimal(data.get("our_price")),
            checked_at=(
                datetime.fromisoformat(checked_at) if checked_at
                else datetime.now(timezone.utc)
            ),
        )


@dataclass
class CompetitorInsights:
    """Competitor listings sorted by price plus their summary."""

    listings: List[CompetitorListing]
    summary: CompetitorSummary

    @property
    def lowest_price(self) -> Decimal:
        return self.summary.lowest_price


@dataclass
class SupplierMatch:
    """Supplier catalog product matched to a marketplace title."""

    url: str
    price: Decimal
    stock_state: str = "unknown"
    sku: Optional[str] = None
    title: Optional[str] = None


class BaseAdapter:
    """Shared plumbing for all source adapters.

    Subclasses set ``source_name`` (also the default rate-limit key) and
    ``adapter_type`` ('scraper', 'api' or 'hybrid').
    """

    source_name: str = ""
    adapter_type: str = ""

    def __init__(
        self,
        rate_limiter: Optional[SourceRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the adapter with dependency injection points.

        Args:
            rate_limiter: Shared limiter (a private one is created if omitted)
            transport: httpx transport override, used by tests
        """
        self.rate_limiter = rate_limiter or SourceRateLimiter()
        self.transport = transport
        self.logger = structlog.get_logger(__name__).bind(adapter=self.source_name)

    async def _throttle(self, source_key: Optional[str] = None) -> None:
        await self.rate_limiter.wait(source_key or self.source_name)

    async def _http_get(
        self,
        url: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
        source: Optional[str] = None,
    ) -> httpx.Response:
        """GET ``url`` and raise TransientFetchError on any failure.

        Returns:
            The successful httpx.Response
        """
        source = source or self.source_name
        request_headers = headers if headers is not None else browser_headers()
        try:
            async with httpx.AsyncClient(
                timeout=timeout or settings.API_REQUEST_TIMEOUT,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url, params=params, headers=request_headers)

                # Handle rate limiting
                if response.status_code == 429:
                    self.logger.warning("rate_limit_hit", url=url)
                    raise RateLimitError(source)

                response.raise_for_status()
                return response

        except httpx.HTTPStatusError as e:
            self.logger.error(
                "http_status_error",
                url=url,
                status_code=e.response.status_code,
                error=str(e),
            )
            raise TransientFetchError(source, str(e), status_code=e.response.status_code) from e

        except httpx.TimeoutException as e:
            self.logger.error("http_timeout", url=url, error=str(e))
            raise TransientFetchError(source, f"timeout: {e}") from e

        except httpx.HTTPError as e:
            self.logger.error("http_network_error", url=url, error=str(e))
            raise TransientFetchError(source, str(e)) from e

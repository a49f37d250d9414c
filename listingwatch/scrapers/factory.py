"""Factory wiring the shared scraper services into adapter instances."""

from typing import Optional

import httpx
import structlog

from listingwatch.config import settings
from listingwatch.scrapers.adapters import (
    CompetitorAdapter,
    MarketplaceAdapter,
    StoreImportAdapter,
    SupplierAdapter,
    SupplierCatalog,
)
from listingwatch.scrapers.extraction.engine import ExtractionEngine
from listingwatch.scrapers.utils.browser_manager import BrowserManager, get_browser_manager
from listingwatch.scrapers.utils.credentials import TokenCache
from listingwatch.scrapers.utils.rate_limiter import SourceRateLimiter

logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Creates adapters that share one rate limiter, token cache and browser.

    Sharing matters: the rate limiter only spaces calls it can see, and the
    token cache only saves exchanges when every API caller uses it.
    """

    def __init__(
        self,
        rate_limiter: Optional[SourceRateLimiter] = None,
        token_cache: Optional[TokenCache] = None,
        browser_manager: Optional[BrowserManager] = None,
        engine: Optional[ExtractionEngine] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rate_limiter = rate_limiter or SourceRateLimiter()
        self.token_cache = token_cache or TokenCache(transport=transport)
        self.browser_manager = browser_manager or get_browser_manager()
        self.engine = engine or ExtractionEngine(browser_manager=self.browser_manager)
        self.transport = transport

        self._marketplace: Optional[MarketplaceAdapter] = None
        self._supplier: Optional[SupplierAdapter] = None
        self._catalog: Optional[SupplierCatalog] = None
        self._competitor: Optional[CompetitorAdapter] = None
        self._store_import: Optional[StoreImportAdapter] = None

        logger.info(
            "adapter_factory_initialized",
            api_configured=settings.ebay_api_configured(),
            min_delay=self.rate_limiter.min_delay,
        )

    @property
    def marketplace(self) -> MarketplaceAdapter:
        if self._marketplace is None:
            self._marketplace = MarketplaceAdapter(
                engine=self.engine, rate_limiter=self.rate_limiter, transport=self.transport
            )
        return self._marketplace

    @property
    def supplier(self) -> SupplierAdapter:
        if self._supplier is None:
            self._supplier = SupplierAdapter(rate_limiter=self.rate_limiter, transport=self.transport)
        return self._supplier

    @property
    def supplier_catalog(self) -> SupplierCatalog:
        if self._catalog is None:
            self._catalog = SupplierCatalog(rate_limiter=self.rate_limiter, transport=self.transport)
        return self._catalog

    @property
    def competitor(self) -> CompetitorAdapter:
        if self._competitor is None:
            self._competitor = CompetitorAdapter(
                token_cache=self.token_cache, rate_limiter=self.rate_limiter, transport=self.transport
            )
        return self._competitor

    @property
    def store_import(self) -> StoreImportAdapter:
        if self._store_import is None:
            self._store_import = StoreImportAdapter(
                engine=self.engine, rate_limiter=self.rate_limiter, transport=self.transport
            )
        return self._store_import

    async def close(self) -> None:
        """Stop the shared browser."""
        await self.browser_manager.stop()


# Global factory instance, created on first use
_adapter_factory: Optional[AdapterFactory] = None


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory instance.

    Returns:
        AdapterFactory instance
    """
    global _adapter_factory
    if _adapter_factory is None:
        _adapter_factory = AdapterFactory()
    return _adapter_factory

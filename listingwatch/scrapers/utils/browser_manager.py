"""Playwright browser lifecycle manager with anti-detection.

Provides one shared browser and context, and hands out pages from a
bounded pool so concurrent extractions cannot exhaust browser memory.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from listingwatch.config import settings
from listingwatch.scrapers.utils.user_agents import get_random_user_agent

logger = structlog.get_logger(__name__)


class BrowserManager:
    """Manages Playwright browser lifecycle with anti-detection features.

    The browser is launched lazily on first use. Pages are checked out with
    ``async with manager.page() as page:`` and are always closed on exit,
    including when extraction raises.
    """

    def __init__(
        self,
        headless: Optional[bool] = None,
        max_pages: Optional[int] = None,
        navigation_timeout_ms: Optional[int] = None,
    ):
        self._headless = settings.BROWSER_HEADLESS if headless is None else headless
        self._max_pages = max_pages or settings.BROWSER_MAX_PAGES
        self._navigation_timeout_ms = navigation_timeout_ms or settings.NAVIGATION_TIMEOUT_MS
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()
        self._pool = asyncio.Semaphore(self._max_pages)

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch the browser. Safe to call more than once."""
        async with self._lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                ],
            )
            self._context = await self._browser.new_context(
                user_agent=get_random_user_agent(),
                viewport={"width": 1920, "height": 1080},
                locale="en-GB",
                timezone_id="Europe/London",
                java_script_enabled=True,
                extra_http_headers={"Accept-Language": "en-GB,en;q=0.9"},
            )
            await self._context.add_init_script(STEALTH_JS)
            logger.info("browser_started", headless=self._headless, max_pages=self._max_pages)

    async def stop(self) -> None:
        """Close the context and the browser."""
        async with self._lock:
            if self._context:
                try:
                    await self._context.close()
                except Exception as e:
                    logger.warning("browser_context_close_failed", error=str(e))
                self._context = None
            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Check a page out of the pool; it is closed when the block exits."""
        async with self._pool:
            if not self._browser:
                await self.start()
            page = await self._context.new_page()
            page.set_default_navigation_timeout(self._navigation_timeout_ms)
            try:
                yield page
            finally:
                try:
                    await page.close()
                except Exception as e:
                    logger.warning("browser_page_close_failed", error=str(e))


# Minimal stealth JS to mask automation signals
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-GB', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) =>
  parameters.name === 'notifications'
    ? Promise.resolve({ state: Notification.permission })
    : originalQuery(parameters);
"""


# Singleton instance
_browser_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Get the global BrowserManager singleton."""
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager()
    return _browser_manager

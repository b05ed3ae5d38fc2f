"""Playwright browser lifecycle for a single calendar scan.

CalendarBrowser launches Chromium, applies the read-only scraping guardrails
and hands out a CalendarPage. The reservation calendar is public, so no
login or storage state is kept between runs.
"""

from typing import TYPE_CHECKING

from playwright.async_api import async_playwright

from src.slotwatch.logging import get_logger
from src.slotwatch.pages.calendar import CalendarPage
from src.slotwatch.utils import configure_page_for_scraping

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Playwright

logger = get_logger(__name__)

# Wide viewport so the timeline renders every resource row without scrolling.
VIEWPORT = {"width": 1920, "height": 1080}


class CalendarBrowser:
    """Async context manager owning one headless Chromium session.

    Usage:
        async with CalendarBrowser(headless=True) as calendar:
            await calendar.load(url)
    """

    def __init__(self, *, headless: bool = True, timeout_ms: int = 30000) -> None:
        self.headless = headless
        self.timeout_ms = timeout_ms
        self._playwright: "Playwright | None" = None
        self._browser: "Browser | None" = None
        self._context: "BrowserContext | None" = None

    async def __aenter__(self) -> CalendarPage:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            self._context = await self._browser.new_context(viewport=VIEWPORT)
            page = await self._context.new_page()
            await configure_page_for_scraping(page, read_only=True, timeout_ms=self.timeout_ms)
        except Exception as e:
            # __aexit__ does not run when __aenter__ raises
            logger.error("browser_start_failed", error=str(e), type=type(e).__name__)
            await self.close()
            raise
        logger.info("browser_started", headless=self.headless)
        return CalendarPage(page, timeout_ms=self.timeout_ms)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
        logger.info("browser_closed")

    async def close(self) -> None:
        """Release the context, browser and driver; safe to call twice."""
        context, browser, playwright = self._context, self._browser, self._playwright
        self._context = self._browser = self._playwright = None
        if context:
            await context.close()
        if browser:
            await browser.close()
        if playwright:
            await playwright.stop()

"""CalendarPage - reads the LibCal equipment reservation timeline.

Navigates to the makerspace reservation page and reads the rendered
FullCalendar resource-timeline, one date range ("page") at a time.

DOM structure (LibCal equipment booking, FullCalendar scheduler):
  div.fc-toolbar
    h2.fc-toolbar-title -> visible date range
    button.fc-prev-button / button.fc-next-button
      next is disabled once the booking window's last day is shown
  table (resource timeline)
    a.fc-timeline-event -> one bookable hour for one piece of equipment
      title / aria-label="7:00pm Tuesday, January 13, 2026 - <equipment> - Available"
      class contains s-lc-eq-avail for free slots, s-lc-eq-checkout-reserved /
      s-lc-eq-r-unavailable for taken ones

Slot labels are parsed by src.slotwatch.parser; this class only moves the
browser and hands over raw label/class pairs.
"""

import re

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.slotwatch.errors import CalendarLoadError, PageReadError, TransientError
from src.slotwatch.logging import get_logger
from src.slotwatch.models import SlotElement

log = get_logger(__name__)

# Banner LibCal shows when the visible range lies past the booking window.
END_BANNER_RE = re.compile(
    r"(beyond|end of) the (booking|reservation) window"
    r"|no (more|further) (dates|availability)"
    r"|not yet available for booking",
    re.IGNORECASE,
)

_READ_SLOTS_JS = """(selector) => Array.from(document.querySelectorAll(selector)).map(el => ({
    label: el.getAttribute('title') || el.getAttribute('aria-label') || '',
    class_names: el.className || '',
    href: el.getAttribute('href') ? el.href : null,
}))"""

_NEXT_DISABLED_JS = """(selector) => {
    const btn = document.querySelector(selector);
    return btn ? (btn.disabled || btn.getAttribute('aria-disabled') === 'true') : true;
}"""


class CalendarPage:
    """Equipment reservation calendar rendered by LibCal.

    Implements the render/evaluate side of the scan: load the calendar,
    read the slot elements on the visible range, and step to the next range.
    """

    # Selectors for LibCal's FullCalendar timeline
    READY_SELECTOR = "table"
    SLOT_ELEMENT = "a.fc-timeline-event"
    NEXT_BUTTON = "button.fc-next-button"

    def __init__(self, page: Page, *, timeout_ms: int = 30000) -> None:
        self.page = page
        self.timeout_ms = timeout_ms

    async def load(self, url: str) -> None:
        """Navigate to the calendar and wait for the grid to appear.

        The navigation is retried once on timeout.

        Raises:
            CalendarLoadError: If the calendar could not be loaded at all.
        """
        try:
            await self._goto(url)
        except TransientError as e:
            log.error("calendar_load_failed", url=url, error=str(e))
            raise CalendarLoadError(f"Calendar page failed to load: {url}") from e
        log.info("calendar_loaded", url=url)

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_fixed(5),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    async def _goto(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
            await self.page.locator(self.READY_SELECTOR).first.wait_for(
                state="visible", timeout=self.timeout_ms // 3
            )
        except PlaywrightTimeoutError as e:
            log.warning("calendar_load_timeout", url=url)
            raise TransientError(f"Timed out loading {url}") from e
        except PlaywrightError as e:
            log.warning("calendar_load_error", url=url, error=str(e))
            raise TransientError(f"Navigation to {url} failed: {e}") from e

    async def get_slot_elements(self) -> list[SlotElement]:
        """Read every slot element in the visible range, in DOM order."""
        try:
            raw = await self.page.evaluate(_READ_SLOTS_JS, self.SLOT_ELEMENT)
        except PlaywrightError as e:
            raise PageReadError(f"Reading slot elements failed: {e}") from e
        elements = [SlotElement(**item) for item in raw]
        log.debug("slot_elements_read", count=len(elements))
        return elements

    async def is_next_disabled(self) -> bool:
        """True when the next-range control is disabled or missing."""
        try:
            return bool(await self.page.evaluate(_NEXT_DISABLED_JS, self.NEXT_BUTTON))
        except PlaywrightError as e:
            raise PageReadError(f"Reading next control failed: {e}") from e

    async def has_end_banner(self) -> bool:
        """True when the page says the visible range is past the booking window."""
        try:
            count = await self.page.get_by_text(END_BANNER_RE).count()
        except PlaywrightError as e:
            raise PageReadError(f"Reading end banner failed: {e}") from e
        return count > 0

    async def click_next(self) -> bool:
        """Click the next-range control.

        Returns:
            False if the control is missing, disabled, or the click failed.
        """
        if await self.is_next_disabled():
            return False
        try:
            await self.page.locator(self.NEXT_BUTTON).first.click(timeout=5000)
        except PlaywrightError as e:
            log.warning("next_click_failed", error=str(e))
            return False
        return True

    async def wait_for_settle(self, delay_ms: int) -> None:
        """Let the range transition finish before the grid is read.

        Waits for network quiet (best effort), then a fixed delay so the
        timeline has redrawn its events.
        """
        try:
            await self.page.wait_for_load_state("networkidle", timeout=self.timeout_ms)
        except PlaywrightTimeoutError:
            log.debug("settle_network_busy")
        if delay_ms > 0:
            await self.page.wait_for_timeout(delay_ms)


"""Pager - walks the calendar range by range and collects slot records.

The calendar has no "last page" marker of its own. The scan ends when the
next-range control reports itself disabled or an end-of-window banner shows,
whichever is seen first. A page ceiling guards against a control that never
reports disabled, and a click that leaves the grid unchanged ends the scan
as a stall.
"""

from collections.abc import Iterable
from typing import Protocol

from pydantic import BaseModel, Field

from src.slotwatch.errors import PageReadError
from src.slotwatch.logging import get_logger
from src.slotwatch.models import SlotElement, SlotRecord
from src.slotwatch.parser import parse_slot_elements

log = get_logger(__name__)

DEFAULT_PAGE_CEILING = 10
DEFAULT_SETTLE_DELAY_MS = 3000

# Stop reasons
STOP_NEXT_DISABLED = "next_disabled"
STOP_END_BANNER = "end_banner"
STOP_CEILING = "ceiling"
STOP_STALLED = "stalled"


class SlotSource(Protocol):
    """Render/evaluate side of the scan (implemented by CalendarPage)."""

    async def get_slot_elements(self) -> list[SlotElement]: ...

    async def click_next(self) -> bool: ...

    async def is_next_disabled(self) -> bool: ...

    async def has_end_banner(self) -> bool: ...

    async def wait_for_settle(self, delay_ms: int) -> None: ...


class PageScan(BaseModel):
    """Records collected across all visited pages."""

    records: list[SlotRecord] = Field(default_factory=list)
    pages: int = 0
    stop_reason: str = ""


class Pager:
    """Drives (settle, scrape, advance) cycles over a SlotSource."""

    def __init__(
        self,
        source: SlotSource,
        watch_list: Iterable[str],
        *,
        page_ceiling: int = DEFAULT_PAGE_CEILING,
        settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
    ) -> None:
        if page_ceiling < 1:
            raise ValueError("page_ceiling must be at least 1")
        self.source = source
        self.watch_list = list(watch_list)
        self.page_ceiling = page_ceiling
        self.settle_delay_ms = settle_delay_ms

    async def collect(self) -> PageScan:
        """Scan pages until an end signal, a stall, or the page ceiling.

        Each page is read only after the source has settled, so a range that
        is still mid-transition is never scraped. A read failure after the
        first page ends the scan as a stall with what was collected.

        Returns:
            PageScan with every page's records concatenated in scan order.

        Raises:
            PageReadError: The first page could not be read at all.
        """
        scan = PageScan()
        previous_labels: list[str] | None = None

        while True:
            try:
                labels = await self._read_page(scan, previous_labels)
                if labels is None or await self._should_stop(scan):
                    break
                if not await self.source.click_next():
                    log.warning("pagination_stalled", page=scan.pages, reason="next_click_failed")
                    scan.stop_reason = STOP_STALLED
                    break
            except PageReadError as e:
                if scan.pages == 0:
                    raise
                log.warning(
                    "pagination_stalled",
                    page=scan.pages + 1,
                    reason="page_read_failed",
                    error=str(e),
                )
                scan.stop_reason = STOP_STALLED
                break

            previous_labels = labels

        return scan

    async def _read_page(
        self, scan: PageScan, previous_labels: list[str] | None
    ) -> list[str] | None:
        """Settle, scrape and parse one page. None means the page is a stall."""
        await self.source.wait_for_settle(self.settle_delay_ms)
        elements = await self.source.get_slot_elements()
        labels = [element.label for element in elements]

        if previous_labels is not None and labels and labels == previous_labels:
            log.warning(
                "pagination_stalled",
                page=scan.pages + 1,
                reason="page_unchanged_after_click",
            )
            scan.stop_reason = STOP_STALLED
            return None

        scan.pages += 1
        records = parse_slot_elements(elements, self.watch_list)
        scan.records.extend(records)
        log.info(
            "page_scraped",
            page=scan.pages,
            elements=len(elements),
            records=len(records),
        )
        return labels

    async def _should_stop(self, scan: PageScan) -> bool:
        if await self.source.is_next_disabled():
            log.info("pagination_finished", pages=scan.pages, reason=STOP_NEXT_DISABLED)
            scan.stop_reason = STOP_NEXT_DISABLED
            return True

        if await self.source.has_end_banner():
            log.info("pagination_finished", pages=scan.pages, reason=STOP_END_BANNER)
            scan.stop_reason = STOP_END_BANNER
            return True

        if scan.pages >= self.page_ceiling:
            log.warning("page_ceiling_reached", pages=scan.pages, ceiling=self.page_ceiling)
            scan.stop_reason = STOP_CEILING
            return True
        return False

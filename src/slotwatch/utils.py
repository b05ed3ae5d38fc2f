"""Shared Playwright page setup: resource blocking and read-only guardrails."""

from playwright.async_api import Page, Route

from src.slotwatch.logging import get_logger

log = get_logger(__name__)

# The calendar grid is built from XHR JSON; none of these are needed to read it.
BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset({"image", "font", "media"})

# HTTP methods that modify server state. The watcher never books anything.
_BLOCKED_METHODS: frozenset[str] = frozenset({"PUT", "DELETE", "PATCH"})

# POST endpoints LibCal uses to *read* availability for the visible range.
WHITELISTED_AJAX_PATHS: frozenset[str] = frozenset(
    {
        "/r/accessible/availability",
        "/spaces/availability/grid",
        "/equipment/availability",
    }
)


async def configure_page_for_scraping(
    page: Page, *, read_only: bool = True, timeout_ms: int = 30000
) -> None:
    """Set up a Playwright page for scraping the reservation calendar.

    Blocks images, fonts and media to speed up rendering, and in read-only
    mode aborts any request that could create or change a booking.

    Args:
        page: Playwright Page instance.
        read_only: If True, block PUT/DELETE/PATCH and non-whitelisted POSTs.
        timeout_ms: Default action and navigation timeout.
    """

    async def _block_resources(route: Route) -> None:
        request = route.request

        if read_only and (
            request.method in _BLOCKED_METHODS
            or (
                request.method == "POST"
                and not any(path in request.url for path in WHITELISTED_AJAX_PATHS)
            )
        ):
            log.warning(
                "blocked_mutating_request",
                method=request.method,
                url=request.url,
            )
            await route.abort("blockedbyclient")
            return

        if request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    await page.route("**/*", _block_resources)
    page.set_default_timeout(timeout_ms)
    page.set_default_navigation_timeout(timeout_ms)

"""In-memory stand-ins for the browser, the calendar API and the mail server."""

from datetime import datetime
from itertools import count

from src.slotwatch.errors import CalendarApiError, CalendarLoadError, PageReadError
from src.slotwatch.models import CalendarEvent, SlotElement


def slot(time: str, date: str, equipment: str, status: str | None = "Available", **kw) -> SlotElement:
    label = f"{time} {date} - {equipment}"
    if status:
        label += f" - {status}"
    return SlotElement(label=label, **kw)


class FakeSource:
    """Serves pre-built pages; page i+1 appears after a successful click."""

    def __init__(
        self,
        pages: list[list[SlotElement]],
        *,
        never_disabled: bool = False,
        banner_on_page: int | None = None,
        click_has_no_effect: bool = False,
        click_fails: bool = False,
        fail_load: bool = False,
        fail_read_on_page: int | None = None,
    ) -> None:
        self.pages = pages
        self.index = 0
        self.never_disabled = never_disabled
        self.banner_on_page = banner_on_page
        self.click_has_no_effect = click_has_no_effect
        self.click_fails = click_fails
        self.fail_load = fail_load
        self.fail_read_on_page = fail_read_on_page
        self.calls: list[str] = []
        self.settled = True

    async def load(self, url: str) -> None:
        self.calls.append("load")
        if self.fail_load:
            raise CalendarLoadError(f"Calendar page failed to load: {url}")

    async def wait_for_settle(self, delay_ms: int) -> None:
        self.calls.append("settle")
        self.settled = True

    async def get_slot_elements(self) -> list[SlotElement]:
        assert self.settled, "scraped a page that was still transitioning"
        self.calls.append("scrape")
        if self.fail_read_on_page == self.index + 1:
            raise PageReadError("Reading slot elements failed: Target closed")
        if self.index < len(self.pages):
            return list(self.pages[self.index])
        return []

    async def is_next_disabled(self) -> bool:
        if self.never_disabled:
            return False
        return self.index >= len(self.pages) - 1

    async def has_end_banner(self) -> bool:
        return self.banner_on_page is not None and self.index + 1 >= self.banner_on_page

    async def click_next(self) -> bool:
        self.calls.append("click")
        if self.click_fails:
            return False
        self.settled = False
        if not self.click_has_no_effect:
            self.index += 1
        return True

    async def __aenter__(self) -> "FakeSource":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.calls.append("close")


class EndlessSource(FakeSource):
    """Every click reveals a new page; the next control never disables."""

    def __init__(self, equipment: str = "Laser Cutter") -> None:
        super().__init__([], never_disabled=True)
        self.equipment = equipment

    async def get_slot_elements(self) -> list[SlotElement]:
        self.calls.append("scrape")
        day = self.index + 1
        return [slot("11:00pm", f"Monday, March {day}, 2027", self.equipment)]


class FakeCalendar:
    """Stateful calendar API that records every mutation."""

    def __init__(self, events: list[CalendarEvent] | None = None) -> None:
        self._ids = count(1)
        self.events: dict[str, CalendarEvent] = {}
        for event in events or []:
            event_id = event.event_id or f"seed-{next(self._ids)}"
            self.events[event_id] = event.model_copy(update={"event_id": event_id})
        self.mutations: list[tuple[str, str]] = []
        self.fail_list = False
        self.fail_create = False

    def list_upcoming_events(
        self, calendar_id: str, title_prefix: str = "", *, now: datetime | None = None
    ) -> list[CalendarEvent]:
        if self.fail_list:
            raise CalendarApiError("GET events: 503", 503)
        return [
            event
            for event in self.events.values()
            if event.title.startswith(title_prefix) and (now is None or event.start >= now)
        ]

    def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        if self.fail_create:
            raise CalendarApiError("POST events: 500", 500)
        event_id = f"ev-{next(self._ids)}"
        stored = event.model_copy(update={"event_id": event_id})
        self.events[event_id] = stored
        self.mutations.append(("create", event_id))
        return stored

    def update_event(self, calendar_id: str, event_id: str, event: CalendarEvent) -> None:
        self.events[event_id] = event.model_copy(update={"event_id": event_id})
        self.mutations.append(("update", event_id))

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        del self.events[event_id]
        self.mutations.append(("delete", event_id))


class FakeNotifier:
    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: list[tuple[str, str]] = []

    def send(self, subject: str, body: str) -> bool:
        self.sent.append((subject, body))
        return self.succeed

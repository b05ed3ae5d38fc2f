"""Calendar reconciler - mirrors the current snapshot into an external calendar.

Every available last slot becomes a one-hour event titled
"<prefix> <equipment>" starting at the slot's local time. Events are matched
on (title, start instant), so a run with an unchanged snapshot performs no
writes at all. Events carrying the prefix that no longer correspond to a
snapshot entry are deleted.
"""

from datetime import datetime, time, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

from src.slotwatch.errors import SlotWatchError
from src.slotwatch.logging import get_logger
from src.slotwatch.models import CalendarEvent, DaySlotStatus, ReconcileResult, Snapshot
from src.slotwatch.reducer import parse_display_date, time_to_minutes

log = get_logger(__name__)

EVENT_DURATION = timedelta(hours=1)
AVAILABLE_CATEGORY = "Available"

EventKey = tuple[str, datetime]


class CalendarClient(Protocol):
    """External calendar API (implemented by GraphCalendarClient)."""

    def list_upcoming_events(
        self, calendar_id: str, title_prefix: str = "", *, now: datetime | None = None
    ) -> list[CalendarEvent]: ...

    def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent: ...

    def update_event(self, calendar_id: str, event_id: str, event: CalendarEvent) -> None: ...

    def delete_event(self, calendar_id: str, event_id: str) -> None: ...


def slot_start(slot: DaySlotStatus, tz: ZoneInfo) -> datetime | None:
    """Local start instant of a slot's last hour, or None if unparseable."""
    day = parse_display_date(slot.date)
    minutes = time_to_minutes(slot.last_time)
    if day is None or minutes is None:
        return None
    return datetime.combine(day, time(), tzinfo=tz) + timedelta(minutes=minutes)


def _event_key(title: str, start: datetime) -> EventKey:
    return (title, start.astimezone(timezone.utc))


def _normalize(text: str) -> str:
    # Outlook hands text bodies back with CRLF line endings
    return "\n".join(line.strip() for line in text.strip().splitlines())


class CalendarReconciler:
    """Creates, updates and deletes calendar events to match a snapshot."""

    def __init__(
        self,
        client: CalendarClient,
        calendar_id: str = "",
        *,
        time_zone: str = "UTC",
        title_prefix: str = "Available:",
        booking_page_url: str | None = None,
    ) -> None:
        self.client = client
        self.calendar_id = calendar_id
        self.tz = ZoneInfo(time_zone)
        self.title_prefix = title_prefix
        self.booking_page_url = booking_page_url

    def event_title(self, equipment: str) -> str:
        return f"{self.title_prefix} {equipment}"

    def describe(self, slot: DaySlotStatus) -> str:
        lines = [
            slot.equipment,
            f"Last slot of {slot.date} ({slot.last_time}) is open.",
        ]
        url = slot.booking_url or self.booking_page_url
        if url:
            lines.append(f"Book: {url}")
        return "\n".join(lines)

    def desired_events(
        self, snapshot: Snapshot, *, now: datetime | None = None
    ) -> dict[EventKey, CalendarEvent]:
        """Events the calendar should hold for this snapshot, keyed for matching.

        Entries whose start is already in the past are left out: they can no
        longer be listed as upcoming and would be re-created every run.
        """
        now = now or datetime.now(timezone.utc)
        desired: dict[EventKey, CalendarEvent] = {}
        for slot in snapshot.slots:
            start = slot_start(slot, self.tz)
            if start is None:
                log.warning("slot_start_unparseable", equipment=slot.equipment, date=slot.date)
                continue
            if start < now:
                continue
            title = self.event_title(slot.equipment)
            desired[_event_key(title, start)] = CalendarEvent(
                title=title,
                start=start,
                end=start + EVENT_DURATION,
                description=self.describe(slot),
                categories=[AVAILABLE_CATEGORY],
            )
        return desired

    def reconcile(self, snapshot: Snapshot, *, now: datetime | None = None) -> ReconcileResult:
        """Bring the calendar's watcher events into line with the snapshot.

        API failures are logged and counted; they never raise.
        """
        result = ReconcileResult()
        now = now or datetime.now(timezone.utc)

        try:
            existing = self.client.list_upcoming_events(
                self.calendar_id, self.title_prefix, now=now
            )
        except SlotWatchError as e:
            log.error("calendar_list_failed", error=str(e))
            result.failed += 1
            result.errors.append(f"list: {e}")
            return result

        desired = self.desired_events(snapshot, now=now)

        matched: dict[EventKey, CalendarEvent] = {}
        stale: list[CalendarEvent] = []
        for event in existing:
            if not event.title.startswith(self.title_prefix):
                continue
            key = _event_key(event.title, event.start)
            if key in desired and key not in matched:
                matched[key] = event
            else:
                stale.append(event)

        for key, wanted in desired.items():
            current = matched.get(key)
            if current is None:
                self._apply(
                    result, "create", wanted, self.client.create_event, self.calendar_id, wanted
                )
            elif _normalize(current.description) != _normalize(wanted.description):
                self._apply(
                    result,
                    "update",
                    wanted,
                    self.client.update_event,
                    self.calendar_id,
                    current.event_id,
                    wanted,
                )
            else:
                result.unchanged += 1

        for event in stale:
            if not event.event_id:
                continue
            self._apply(
                result, "delete", event, self.client.delete_event, self.calendar_id, event.event_id
            )

        log.info(
            "calendar_reconciled",
            created=result.created,
            updated=result.updated,
            deleted=result.deleted,
            unchanged=result.unchanged,
            failed=result.failed,
        )
        return result

    def _apply(
        self, result: ReconcileResult, action: str, event: CalendarEvent, call, *args
    ) -> None:
        label = f"{event.title} @ {event.start.isoformat()}"
        try:
            call(*args)
        except SlotWatchError as e:
            log.error("calendar_write_failed", action=action, target=label, error=str(e))
            result.failed += 1
            result.errors.append(f"{action} {label}: {e}")
            return

        if action == "create":
            result.created += 1
        elif action == "update":
            result.updated += 1
        else:
            result.deleted += 1
        log.info(f"event_{action}d", target=label)

"""Last-slot reduction: one canonical status per (equipment, date).

The business rule is "the last hour governs the whole day": a day counts as
open for overnight use only when its chronologically latest slot is free,
regardless of what happens earlier in the day.
"""

import re
from collections.abc import Iterable
from datetime import date, datetime

from src.slotwatch.logging import get_logger
from src.slotwatch.models import DaySlotStatus, SlotKey, SlotRecord, Snapshot

log = get_logger(__name__)

_TIME_RE = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\.?\s*$", re.IGNORECASE)

_DATE_FORMATS = ("%A, %B %d, %Y", "%B %d, %Y", "%a, %b %d, %Y", "%Y-%m-%d")


def time_to_minutes(value: str) -> int | None:
    """Convert a 12-hour clock string to minutes since midnight.

    "12:00am" -> 0, "12:30pm" -> 750, "7:00pm" -> 1140.

    Returns:
        Minutes since midnight, or None if the string isn't a valid 12-hour time.
    """
    match = _TIME_RE.match(value or "")
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if not 1 <= hour <= 12 or minute > 59:
        return None

    suffix = match.group(3).lower()
    if suffix == "a" and hour == 12:
        hour = 0
    elif suffix == "p" and hour != 12:
        hour += 12
    return hour * 60 + minute


def parse_display_date(value: str) -> date | None:
    """Parse the calendar's display date ("Tuesday, January 13, 2026")."""
    text = " ".join((value or "").split())
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def reduce_last_slots(records: Iterable[SlotRecord]) -> list[DaySlotStatus]:
    """Collapse slot records into the status of each day's last slot.

    Args:
        records: Slot records in scan order, possibly spanning several pages
            and containing duplicates from re-scanned pages.

    Returns:
        One DaySlotStatus per (equipment, date) group that has at least one
        parseable time, in first-seen order. When two records share the
        latest time, the one seen last wins.
    """
    latest: dict[SlotKey, tuple[int, SlotRecord]] = {}
    order: dict[SlotKey, None] = {}

    for record in records:
        key = (record.equipment, record.date)
        order.setdefault(key, None)

        minutes = time_to_minutes(record.time)
        if minutes is None:
            continue

        current = latest.get(key)
        if current is None or minutes >= current[0]:
            latest[key] = (minutes, record)

    statuses: list[DaySlotStatus] = []
    for key in order:
        if key not in latest:
            log.debug("slot_group_unparseable", equipment=key[0], date=key[1])
            continue
        _, record = latest[key]
        statuses.append(
            DaySlotStatus(
                equipment=record.equipment,
                date=record.date,
                last_time=record.time,
                last_available=record.available,
                booking_url=record.booking_url,
            )
        )
    return statuses


def snapshot_sort_key(status: DaySlotStatus) -> tuple:
    """Date ascending, then equipment; unparseable dates sort last."""
    parsed = parse_display_date(status.date)
    return (parsed is None, parsed or date.max, status.date, status.equipment)


def build_snapshot(
    statuses: Iterable[DaySlotStatus], captured_at: datetime | None = None
) -> Snapshot:
    """Build a snapshot from reduced statuses.

    Keeps only days whose last slot is available, at most one entry per
    (equipment, date), sorted for stable diffing and display.
    """
    by_key: dict[SlotKey, DaySlotStatus] = {}
    for status in statuses:
        if status.last_available:
            by_key[status.key] = status

    slots = tuple(sorted(by_key.values(), key=snapshot_sort_key))
    if captured_at is None:
        return Snapshot(slots=slots)
    return Snapshot(slots=slots, captured_at=captured_at)

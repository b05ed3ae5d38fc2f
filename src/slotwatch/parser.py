"""Slot parser - turns raw calendar elements into typed slot records.

LibCal renders every bookable hour as an ``a.fc-timeline-event`` whose title
carries everything we need:

    "7:00pm Tuesday, January 13, 2026 - Laser Cutter - Available"

Some views separate the time from the date with a dash instead of a space:

    "7:00pm - Tuesday, January 13, 2026 - Laser Cutter - Reserved"

Anything else on the page (resource headers, padding bars, other widgets) is
not a slot and is skipped without complaint.
"""

import re
from collections.abc import Iterable

from src.slotwatch.logging import get_logger
from src.slotwatch.models import SlotElement, SlotRecord
from src.slotwatch.reducer import time_to_minutes

log = get_logger(__name__)

_LABEL_RE = re.compile(
    r"^\s*(?P<time>\d{1,2}(?::\d{2})?\s*[ap]\.?m\.?)\s*(?:-\s*)?"
    r"(?P<date>[^-]+?,\s*\d{4})\s+-\s+"
    r"(?P<equipment>.+?)"
    r"(?:\s+-\s+(?P<status>available|reserved))?\s*$",
    re.IGNORECASE,
)

# Class fragments LibCal uses for cells that cannot be booked. Only consulted
# when the label carries no status token.
_UNAVAILABLE_CLASS_MARKERS = ("reserved", "disabled", "unavailable", "booked")


def parse_slot_label(label: str) -> dict[str, str | None] | None:
    """Split a slot label into its parts.

    Args:
        label: Title/aria-label text of a slot element.

    Returns:
        Dict with "time", "date", "equipment" and "status" ("available",
        "reserved" or None when the label has no status token), or None if
        the label is not shaped like a slot.
    """
    match = _LABEL_RE.match(label or "")
    if not match:
        return None
    status = match.group("status")
    return {
        "time": re.sub(r"[\s.]", "", match.group("time")).lower(),
        "date": " ".join(match.group("date").split()),
        "equipment": match.group("equipment").strip(),
        "status": status.lower() if status else None,
    }


def availability_from_classes(class_names: str) -> bool:
    """Fallback availability signal from the element's CSS classes."""
    for token in class_names.lower().split():
        if any(marker in token for marker in _UNAVAILABLE_CLASS_MARKERS):
            return False
    return True


def parse_slot_elements(
    elements: Iterable[SlotElement], watch_list: Iterable[str]
) -> list[SlotRecord]:
    """Parse one page's slot elements into records for watched equipment.

    Equipment names must equal a watch-list entry exactly once surrounding
    whitespace is trimmed ("Laser Cutter " matches, "Laser Cutters" does not).

    Args:
        elements: Raw elements from the render collaborator, in page order.
        watch_list: Exact equipment names to keep.

    Returns:
        SlotRecords in page order. Elements that aren't slots, belong to other
        equipment, or carry an unparseable time are dropped.
    """
    watched = {name.strip() for name in watch_list}
    records: list[SlotRecord] = []
    skipped = 0

    for element in elements:
        parts = parse_slot_label(element.label)
        if parts is None:
            skipped += 1
            continue

        equipment = parts["equipment"]
        if equipment not in watched:
            continue

        if time_to_minutes(parts["time"]) is None:
            log.debug("slot_time_unparseable", label=element.label)
            continue

        if parts["status"] is not None:
            available = parts["status"] == "available"
        else:
            available = availability_from_classes(element.class_names)

        records.append(
            SlotRecord(
                equipment=equipment,
                date=parts["date"],
                time=parts["time"],
                available=available,
                booking_url=element.href or None,
            )
        )

    log.debug("slots_parsed", records=len(records), skipped=skipped)
    return records

"""State store: the last snapshot, persisted as one JSON document.

File format:
    {
      "slots": [{"equipment": "...", "date": "Monday, March 2, 2026",
                 "time": "11:00pm", "available": true}, ...],
      "lastChecked": "2026-03-01T18:00:00+00:00"
    }

The file is overwritten whole on every run; no history is kept. A missing
or unreadable file means "first run" and is never an error for the caller.
"""

import json
import os
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from src.slotwatch.logging import get_logger
from src.slotwatch.models import DaySlotStatus, Snapshot
from src.slotwatch.reducer import build_snapshot

logger = get_logger(__name__)


class CorruptStateError(ValueError):
    """The state file exists but doesn't hold a snapshot."""


class StateStore:
    """Loads and saves the last snapshot at a fixed path."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Snapshot | None:
        """Read the persisted snapshot.

        Returns:
            The snapshot, or None when the file is missing or corrupt.
        """
        if not self.path.exists():
            logger.info("state_missing", path=str(self.path))
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            snapshot = _snapshot_from_json(data)
        except (
            OSError,
            UnicodeDecodeError,
            json.JSONDecodeError,
            CorruptStateError,
            ValidationError,
        ) as e:
            logger.warning(
                "state_unreadable",
                path=str(self.path),
                error=str(e),
                type=type(e).__name__,
            )
            return None

        logger.info("state_loaded", path=str(self.path), slots=len(snapshot))
        return snapshot

    def save(self, snapshot: Snapshot) -> bool:
        """Overwrite the state file with the given snapshot.

        Writes to a sibling temp file first so a crash mid-write leaves the
        previous snapshot intact.

        Returns:
            True on success, False if the file could not be written.
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(_snapshot_to_json(snapshot), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("state_save_failed", path=str(self.path), error=str(e))
            return False

        logger.info("state_saved", path=str(self.path), slots=len(snapshot))
        return True


def _snapshot_to_json(snapshot: Snapshot) -> dict:
    slots = []
    for slot in snapshot.slots:
        item = {
            "equipment": slot.equipment,
            "date": slot.date,
            "time": slot.last_time,
            "available": slot.last_available,
        }
        if slot.booking_url:
            item["bookingUrl"] = slot.booking_url
        slots.append(item)
    return {"slots": slots, "lastChecked": snapshot.captured_at.isoformat()}


def _snapshot_from_json(data: object) -> Snapshot:
    # Older state files hold a bare list of
    # {"equipment", "date", "dateTime": "7:00pm Tuesday, ..."} entries.
    if isinstance(data, list):
        items, captured_at = data, None
    elif isinstance(data, dict) and isinstance(data.get("slots"), list):
        items = data["slots"]
        captured_at = _parse_timestamp(data.get("lastChecked"))
    else:
        raise CorruptStateError("expected an object with a 'slots' list")

    statuses = []
    for item in items:
        if not isinstance(item, dict):
            raise CorruptStateError(f"slot entry is not an object: {item!r}")
        if not item.get("available", True):
            continue
        time = item.get("time")
        if time is None and isinstance(item.get("dateTime"), str):
            time = item["dateTime"].split(" ", 1)[0]
        statuses.append(
            DaySlotStatus(
                equipment=item.get("equipment"),
                date=item.get("date"),
                last_time=time or "",
                last_available=True,
                booking_url=item.get("bookingUrl"),
            )
        )
    return build_snapshot(statuses, captured_at=captured_at)


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None

"""Pydantic models for calendar slots, snapshots and calendar events.

All data structures use Pydantic v2 for validation, serialization, and type safety.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

SlotKey = tuple[str, str]  # (equipment, date)


class SlotElement(BaseModel):
    """One raw slot element as read off the rendered calendar page.

    The label comes from the element's title (or aria-label) attribute, e.g.
    "7:00pm Tuesday, January 13, 2026 - Laser Cutter - Available".
    """

    label: str
    class_names: str = ""
    href: str | None = None


class SlotRecord(BaseModel):
    """One observed calendar cell for a watched piece of equipment."""

    equipment: str
    date: str  # "Tuesday, January 13, 2026"
    time: str  # "7:00pm"
    available: bool
    booking_url: str | None = None


class DaySlotStatus(BaseModel):
    """Status of the last bookable slot for one (equipment, date) pair."""

    model_config = ConfigDict(frozen=True)

    equipment: str
    date: str
    last_time: str
    last_available: bool
    booking_url: str | None = None

    @property
    def key(self) -> SlotKey:
        return (self.equipment, self.date)


class Snapshot(BaseModel):
    """All currently-available last slots as of one scan.

    Only available entries are kept; absence means "not available". Built
    once per run by build_snapshot() and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    slots: tuple[DaySlotStatus, ...] = ()
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def keys(self) -> set[SlotKey]:
        return {slot.key for slot in self.slots}

    def __len__(self) -> int:
        return len(self.slots)


class Delta(BaseModel):
    """Difference between two snapshots, keyed on (equipment, date)."""

    added: list[DaySlotStatus] = Field(default_factory=list)
    removed: list[DaySlotStatus] = Field(default_factory=list)

    @property
    def added_keys(self) -> set[SlotKey]:
        return {slot.key for slot in self.added}

    @property
    def removed_keys(self) -> set[SlotKey]:
        return {slot.key for slot in self.removed}

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


class CalendarEvent(BaseModel):
    """An event in the external calendar owned by the watcher."""

    event_id: str | None = None
    title: str
    start: datetime  # timezone-aware
    end: datetime
    description: str = ""
    categories: list[str] = Field(default_factory=list)


class ReconcileResult(BaseModel):
    """Counts of calendar mutations performed by one reconciliation."""

    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def mutations(self) -> int:
        return self.created + self.updated + self.deleted


class RunResult(BaseModel):
    """Outcome of one watcher run."""

    snapshot: Snapshot
    delta: Delta
    first_run: bool
    pages_scanned: int = 0
    stop_reason: str = ""
    state_saved: bool = False
    notified: bool | None = None  # None when no notification was due
    reconcile: ReconcileResult | None = None

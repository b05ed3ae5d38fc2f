"""Makerspace slot watcher.

Scans the LibCal equipment reservation calendar, keeps the status of each
day's last bookable slot, and reports newly opened days once by email and
as events in a Microsoft 365 calendar.
"""

from src.slotwatch.differ import diff_snapshots
from src.slotwatch.models import DaySlotStatus, Delta, SlotRecord, Snapshot
from src.slotwatch.monitor import run_check
from src.slotwatch.pager import Pager
from src.slotwatch.parser import parse_slot_elements
from src.slotwatch.reconciler import CalendarReconciler
from src.slotwatch.reducer import build_snapshot, reduce_last_slots
from src.slotwatch.state import StateStore

__all__ = [
    "CalendarReconciler",
    "DaySlotStatus",
    "Delta",
    "Pager",
    "SlotRecord",
    "Snapshot",
    "StateStore",
    "build_snapshot",
    "diff_snapshots",
    "parse_slot_elements",
    "reduce_last_slots",
    "run_check",
]

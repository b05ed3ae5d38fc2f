"""Snapshot diff: which (equipment, date) pairs opened or closed since last run.

Identity is the pair (equipment, date). The last-slot time is carried for
display only and never makes two entries differ.
"""

from src.slotwatch.models import Delta, Snapshot


def diff_snapshots(previous: Snapshot | None, current: Snapshot) -> Delta:
    """Compare the fresh snapshot against the persisted one.

    Args:
        previous: Last persisted snapshot, or None on the first run (treated
            as empty so every current entry is reported).
        current: Snapshot built from this run's scan.

    Returns:
        Delta with entries of `current` whose pair is new ("added", in
        snapshot order) and entries of `previous` whose pair is gone
        ("removed"). Only "added" drives notifications.
    """
    previous_slots = previous.slots if previous is not None else ()
    old_keys = {slot.key for slot in previous_slots}
    new_keys = current.keys

    added = [slot for slot in current.slots if slot.key not in old_keys]
    removed = [slot for slot in previous_slots if slot.key not in new_keys]
    return Delta(added=added, removed=removed)


def format_delta_summary(delta: Delta, *, limit: int = 10) -> str:
    """Format a delta for human-readable display."""
    lines = [f"  Added: {len(delta.added)}  |  Removed: {len(delta.removed)}"]

    if delta.added:
        lines.append("  New:")
        for slot in delta.added[:limit]:
            lines.append(f"    + {slot.equipment}: {slot.date} (last slot {slot.last_time})")
        if len(delta.added) > limit:
            lines.append(f"    ... and {len(delta.added) - limit} more")

    if delta.removed:
        lines.append("  Gone:")
        for slot in delta.removed[:limit]:
            lines.append(f"    - {slot.equipment}: {slot.date}")
        if len(delta.removed) > limit:
            lines.append(f"    ... and {len(delta.removed) - limit} more")

    return "\n".join(lines)

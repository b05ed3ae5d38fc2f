from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from src.slotwatch.models import CalendarEvent, DaySlotStatus
from src.slotwatch.reconciler import CalendarReconciler, slot_start
from src.slotwatch.reducer import build_snapshot
from tests.fakes import FakeCalendar

TZ = "America/Chicago"
CHICAGO = ZoneInfo(TZ)
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def status(date, equipment="Laser Cutter", time="11:00pm"):
    return DaySlotStatus(equipment=equipment, date=date, last_time=time, last_available=True)


def reconciler(calendar):
    return CalendarReconciler(
        calendar,
        "cal-1",
        time_zone=TZ,
        title_prefix="Available:",
        booking_page_url="https://libcal.example.org/reserve/makerspace",
    )


def test_slot_start_is_localized():
    start = slot_start(status("Monday, March 2, 2026"), CHICAGO)
    assert start == datetime(2026, 3, 2, 23, 0, tzinfo=CHICAGO)
    assert start.astimezone(timezone.utc) == datetime(2026, 3, 3, 5, 0, tzinfo=timezone.utc)


def test_creates_one_hour_events_with_marker():
    calendar = FakeCalendar()
    snapshot = build_snapshot([status("Monday, March 2, 2026")])

    result = reconciler(calendar).reconcile(snapshot, now=NOW)

    assert result.created == 1
    [event] = calendar.events.values()
    assert event.title == "Available: Laser Cutter"
    assert event.start == datetime(2026, 3, 2, 23, 0, tzinfo=CHICAGO)
    assert event.end - event.start == timedelta(hours=1)
    assert event.categories == ["Available"]
    assert "https://libcal.example.org/reserve/makerspace" in event.description


def test_second_run_performs_no_mutations():
    calendar = FakeCalendar()
    snapshot = build_snapshot(
        [status("Monday, March 2, 2026"), status("Tuesday, March 3, 2026", "Vinyl Cutter")]
    )
    rec = reconciler(calendar)

    first = rec.reconcile(snapshot, now=NOW)
    mutations_after_first = len(calendar.mutations)
    second = rec.reconcile(snapshot, now=NOW)

    assert first.created == 2
    assert second.mutations == 0
    assert second.unchanged == 2
    assert len(calendar.mutations) == mutations_after_first


def test_deletes_events_without_snapshot_entry():
    calendar = FakeCalendar()
    rec = reconciler(calendar)
    rec.reconcile(
        build_snapshot([status("Monday, March 2, 2026"), status("Tuesday, March 3, 2026")]),
        now=NOW,
    )

    result = rec.reconcile(build_snapshot([status("Tuesday, March 3, 2026")]), now=NOW)

    assert result.deleted == 1
    assert result.created == 0
    [event] = calendar.events.values()
    assert event.start.date().isoformat() == "2026-03-03"


def test_moved_last_slot_replaces_the_event():
    calendar = FakeCalendar()
    rec = reconciler(calendar)
    rec.reconcile(build_snapshot([status("Monday, March 2, 2026", time="10:00pm")]), now=NOW)

    result = rec.reconcile(build_snapshot([status("Monday, March 2, 2026", time="11:00pm")]), now=NOW)

    assert (result.created, result.deleted) == (1, 1)
    [event] = calendar.events.values()
    assert event.start.hour == 23


def test_changed_description_is_updated():
    start = datetime(2026, 3, 2, 23, 0, tzinfo=CHICAGO)
    calendar = FakeCalendar(
        [
            CalendarEvent(
                event_id="old",
                title="Available: Laser Cutter",
                start=start,
                end=start + timedelta(hours=1),
                description="stale text",
            )
        ]
    )
    result = reconciler(calendar).reconcile(
        build_snapshot([status("Monday, March 2, 2026")]), now=NOW
    )
    assert result.updated == 1
    assert calendar.mutations == [("update", "old")]


def test_crlf_description_counts_as_unchanged():
    rec = reconciler(FakeCalendar())
    slot = status("Monday, March 2, 2026")
    start = datetime(2026, 3, 2, 23, 0, tzinfo=CHICAGO)
    calendar = FakeCalendar(
        [
            CalendarEvent(
                event_id="x",
                title="Available: Laser Cutter",
                # Same instant expressed in UTC, body with Windows line endings
                start=start.astimezone(timezone.utc),
                end=(start + timedelta(hours=1)).astimezone(timezone.utc),
                description=rec.describe(slot).replace("\n", "\r\n") + "\r\n",
            )
        ]
    )
    result = reconciler(calendar).reconcile(build_snapshot([slot]), now=NOW)
    assert result.mutations == 0


def test_duplicate_events_are_collapsed():
    start = datetime(2026, 3, 2, 23, 0, tzinfo=CHICAGO)
    rec = reconciler(FakeCalendar())
    slot = status("Monday, March 2, 2026")
    dup = dict(
        title="Available: Laser Cutter",
        start=start,
        end=start + timedelta(hours=1),
        description=rec.describe(slot),
    )
    calendar = FakeCalendar([CalendarEvent(event_id="a", **dup), CalendarEvent(event_id="b", **dup)])

    result = reconciler(calendar).reconcile(build_snapshot([slot]), now=NOW)

    assert result.deleted == 1
    assert list(calendar.events) == ["a"]


def test_foreign_events_are_left_alone():
    start = datetime(2026, 3, 2, 9, 0, tzinfo=CHICAGO)
    calendar = FakeCalendar(
        [CalendarEvent(event_id="mine", title="Dentist", start=start, end=start + timedelta(hours=1))]
    )
    result = reconciler(calendar).reconcile(build_snapshot([]), now=NOW)
    assert result.mutations == 0
    assert "mine" in calendar.events


def test_past_slots_are_not_mirrored():
    calendar = FakeCalendar()
    snapshot = build_snapshot([status("Sunday, February 1, 2026")])
    result = reconciler(calendar).reconcile(snapshot, now=NOW)
    assert result.mutations == 0
    assert calendar.events == {}


def test_list_failure_skips_reconciliation():
    calendar = FakeCalendar()
    calendar.fail_list = True
    result = reconciler(calendar).reconcile(
        build_snapshot([status("Monday, March 2, 2026")]), now=NOW
    )
    assert result.failed == 1
    assert calendar.mutations == []


def test_write_failure_is_counted_not_raised():
    calendar = FakeCalendar()
    calendar.fail_create = True
    result = reconciler(calendar).reconcile(
        build_snapshot([status("Monday, March 2, 2026"), status("Tuesday, March 3, 2026")]),
        now=NOW,
    )
    assert result.failed == 2
    assert result.created == 0
    assert len(result.errors) == 2

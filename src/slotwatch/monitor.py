"""One watcher run: scan, reduce, diff, persist, notify, mirror.

Steps run strictly in order. The calendar is only touched after the full
multi-page scan and the diff are done, and the new snapshot is saved before
any notification goes out, so a failed email never causes a re-announcement
beyond what the saved state implies.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Protocol

from src.slotwatch.browser import CalendarBrowser
from src.slotwatch.config import WatchConfig
from src.slotwatch.differ import diff_snapshots, format_delta_summary
from src.slotwatch.errors import SlotWatchError
from src.slotwatch.graph import GraphCalendarClient
from src.slotwatch.logging import get_logger
from src.slotwatch.models import RunResult
from src.slotwatch.notifier import (
    EmailNotifier,
    append_summary,
    build_message,
    render_summary_markdown,
    should_notify,
)
from src.slotwatch.pager import Pager, SlotSource
from src.slotwatch.reconciler import CalendarReconciler
from src.slotwatch.reducer import build_snapshot, reduce_last_slots
from src.slotwatch.state import StateStore

log = get_logger(__name__)


class CalendarSource(SlotSource, Protocol):
    async def load(self, url: str) -> None: ...


SourceFactory = Callable[[WatchConfig], AbstractAsyncContextManager[CalendarSource]]


def default_source_factory(config: WatchConfig) -> CalendarBrowser:
    return CalendarBrowser(headless=config.headless, timeout_ms=config.navigation_timeout_ms)


def build_notifier(config: WatchConfig) -> EmailNotifier | None:
    """Email notifier from config, or None when email isn't configured."""
    if not config.email_enabled:
        log.info("email_disabled", reason="smtp_server or email_to not set")
        return None
    return EmailNotifier(
        smtp_server=config.smtp_server,
        smtp_port=config.smtp_port,
        username=config.smtp_user,
        password=config.smtp_password.get_secret_value(),
        sender=config.email_from,
        recipients=config.email_to,
    )


def build_reconciler(config: WatchConfig) -> CalendarReconciler | None:
    """Graph-backed reconciler from config, or None when sync isn't configured."""
    if not config.calendar_sync_enabled:
        log.info("calendar_sync_disabled", reason="graph credentials not set")
        return None
    client = GraphCalendarClient(
        tenant_id=config.graph_tenant_id,
        client_id=config.graph_client_id,
        client_secret=config.graph_client_secret.get_secret_value(),
        user=config.graph_user,
        time_zone=config.time_zone,
    )
    try:
        client.ensure_category()
    except SlotWatchError as e:
        log.warning("calendar_category_check_failed", error=str(e))
    return CalendarReconciler(
        client,
        config.calendar_id,
        time_zone=config.time_zone,
        title_prefix=config.event_title_prefix,
        booking_page_url=config.calendar_url,
    )


async def run_check(
    config: WatchConfig,
    *,
    source_factory: SourceFactory = default_source_factory,
    store: StateStore | None = None,
    notifier: EmailNotifier | None = None,
    reconciler: CalendarReconciler | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
) -> RunResult:
    """Run one availability check.

    Args:
        config: Watcher configuration.
        source_factory: Opens the rendered calendar (Playwright by default).
        store: State store; defaults to config.state_file.
        notifier: Email notifier, or None to skip email.
        reconciler: Calendar reconciler, or None to skip the calendar mirror.
        now: Current instant (for tests); defaults to the wall clock.
        dry_run: Scan and diff only; nothing is saved, sent or mirrored.

    Returns:
        RunResult describing the snapshot, delta and side effects.

    Raises:
        CalendarLoadError: The calendar could not be loaded. Nothing has been
            persisted at that point.
    """
    now = now or datetime.now(timezone.utc)
    store = store or StateStore(config.state_file)

    async with source_factory(config) as source:
        await source.load(config.calendar_url)
        pager = Pager(
            source,
            config.watch_list,
            page_ceiling=config.page_ceiling,
            settle_delay_ms=config.settle_delay_ms,
        )
        scan = await pager.collect()

    snapshot = build_snapshot(reduce_last_slots(scan.records), captured_at=now)
    previous = store.load()
    first_run = previous is None
    delta = diff_snapshots(previous, snapshot)

    log.info(
        "scan_complete",
        pages=scan.pages,
        stop_reason=scan.stop_reason,
        records=len(scan.records),
        available=len(snapshot),
        added=len(delta.added),
        removed=len(delta.removed),
        first_run=first_run,
    )
    log.info("delta_summary", summary="\n" + format_delta_summary(delta))

    result = RunResult(
        snapshot=snapshot,
        delta=delta,
        first_run=first_run,
        pages_scanned=scan.pages,
        stop_reason=scan.stop_reason,
    )
    if dry_run:
        log.info("dry_run_finished")
        return result

    result.state_saved = store.save(snapshot)

    today = now.astimezone(config.tz).date()
    if should_notify(delta, first_run):
        subject, body = build_message(
            delta,
            snapshot,
            first_run=first_run,
            today=today,
            booking_page_url=config.calendar_url,
        )
        if notifier is not None:
            result.notified = notifier.send(subject, body)
        else:
            log.info("notification_skipped", subject=subject, reason="no_notifier")

    summary_path = config.resolved_summary_path()
    if summary_path:
        append_summary(
            summary_path,
            render_summary_markdown(
                delta,
                snapshot,
                first_run=first_run,
                today=today,
                booking_page_url=config.calendar_url,
            ),
        )

    if reconciler is not None:
        result.reconcile = reconciler.reconcile(snapshot, now=now)

    return result

"""Email notification and run summary for newly opened slots.

One email per run at most: sent when the diff found new (equipment, date)
pairs, or on the very first run so the current state is announced once.
Each date line says how far away it is: TODAY, tomorrow, or "N days away".
"""

import smtplib
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

from src.slotwatch.logging import get_logger
from src.slotwatch.models import DaySlotStatus, Delta, Snapshot
from src.slotwatch.reducer import parse_display_date

log = get_logger(__name__)

TITLE = "MAKERSPACE OVERNIGHT AVAILABILITY"


def days_away_label(slot_date: date, today: date) -> str:
    """Human-readable distance between two local calendar days."""
    days = (slot_date - today).days
    if days == 0:
        return "TODAY"
    if days == 1:
        return "tomorrow"
    if days < 0:
        return f"{-days} days ago"
    return f"{days} days away"


def _group_by_date(slots: list[DaySlotStatus]) -> dict[str, list[DaySlotStatus]]:
    grouped: dict[str, list[DaySlotStatus]] = {}
    for slot in slots:
        grouped.setdefault(slot.date, []).append(slot)
    return grouped


def _date_heading(date_text: str, today: date) -> str:
    parsed = parse_display_date(date_text)
    if parsed is None:
        return date_text
    return f"{date_text} ({days_away_label(parsed, today)})"


def should_notify(delta: Delta, first_run: bool) -> bool:
    return first_run or bool(delta.added)


def build_message(
    delta: Delta,
    snapshot: Snapshot,
    *,
    first_run: bool,
    today: date,
    booking_page_url: str = "",
) -> tuple[str, str]:
    """Build the email subject and plain-text body.

    Args:
        delta: Diff of this run against the previous snapshot.
        snapshot: This run's snapshot.
        first_run: True when there was no previous snapshot.
        today: Local date in the calendar's time zone.
        booking_page_url: Link appended to the body.

    Returns:
        (subject, body)
    """
    shown = list(snapshot.slots) if first_run else delta.added

    if not shown:
        subject = "Makerspace: no overnight slots available"
        body = [
            TITLE,
            "=" * len(TITLE),
            "",
            "None available",
            "",
            "No last-hour slots are open for the watched equipment.",
        ]
    else:
        header = "Currently available" if first_run else "NEW availability detected!"
        noun = "slot" if len(shown) == 1 else "slots"
        subject = f"Makerspace: {len(shown)} {'open' if first_run else 'new'} overnight {noun}"
        body = [TITLE, "=" * len(TITLE), "", header, ""]
        for date_text, slots in _group_by_date(shown).items():
            body.append(f"  * {_date_heading(date_text, today)}")
            for slot in slots:
                line = f"      - {slot.equipment} (last slot {slot.last_time})"
                if slot.booking_url:
                    line += f"\n        {slot.booking_url}"
                body.append(line)
            body.append("")

    if booking_page_url:
        body.extend(["", f"Book at: {booking_page_url}"])
    return subject, "\n".join(body).strip() + "\n"


def render_summary_markdown(
    delta: Delta,
    snapshot: Snapshot,
    *,
    first_run: bool,
    today: date,
    booking_page_url: str = "",
) -> str:
    """Markdown summary of the run (for the CI job summary page)."""
    lines = ["# Makerspace Overnight Availability", ""]
    shown = list(snapshot.slots) if first_run else delta.added

    if not snapshot.slots:
        lines.append("## None Available")
        lines.extend(["", "No last-hour slots are open for the watched equipment."])
    elif shown:
        lines.append("## Currently Available" if first_run else "## NEW Availability Detected!")
        lines.append("")
        for date_text, slots in _group_by_date(shown).items():
            lines.append(f"- **{_date_heading(date_text, today)}**")
            lines.extend(f"  - {slot.equipment} ({slot.last_time})" for slot in slots)
    else:
        lines.append("## No Changes")
        lines.extend(
            ["", f"Same availability as last check ({len(snapshot)} slots still available)."]
        )

    if booking_page_url:
        lines.extend(["", f"[Visit Booking Page]({booking_page_url})"])
    return "\n".join(lines) + "\n"


def append_summary(path: str | Path, markdown: str) -> bool:
    """Append the run summary to a Markdown file. Failures are logged only."""
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(markdown)
    except OSError as e:
        log.error("summary_write_failed", path=str(path), error=str(e))
        return False
    log.debug("summary_written", path=str(path))
    return True


class EmailNotifier:
    """Sends plain-text mail over SMTP with STARTTLS."""

    def __init__(
        self,
        smtp_server: str,
        smtp_port: int,
        username: str,
        password: str,
        sender: str,
        recipients: list[str],
        *,
        timeout: int = 30,
    ) -> None:
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.recipients = list(recipients)
        self.timeout = timeout

    def send(self, subject: str, body: str) -> bool:
        """Send one message to all recipients.

        Returns:
            True if the server accepted the message, False otherwise. Never
            raises and never retries; the next run works from fresh state.
        """
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, self.recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            log.error(
                "email_send_failed",
                server=self.smtp_server,
                error=str(e),
                type=type(e).__name__,
            )
            return False

        log.info("email_sent", recipients=len(self.recipients), subject=subject)
        return True

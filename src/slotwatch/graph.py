"""Microsoft Graph calendar client for the availability mirror.

App-only (client credentials) access to one mailbox's calendar. Only the
calls the reconciler needs are wrapped: list upcoming watcher events,
create, update, delete, and make sure the colour category exists.

Pre-requisites:
    - App registration with Calendars.ReadWrite (application) permission
    - MailboxSettings.ReadWrite for category creation
    - Admin consent granted
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import requests

from src.slotwatch.errors import CalendarApiError, RateLimitError
from src.slotwatch.logging import get_logger
from src.slotwatch.models import CalendarEvent

log = get_logger(__name__)

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
LOGIN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"

# Outlook preset colors (from Graph API outlookCategory resource):
#   preset0=Red, preset1=Orange, preset3=Yellow, preset4=Green, preset7=Blue
AVAILABLE_CATEGORY = "Available"
AVAILABLE_COLOR = "preset4"

_SELECT = "id,subject,body,start,end,categories"


class GraphCalendarClient:
    """Thin wrapper over the Graph events API for one mailbox."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        user: str,
        *,
        time_zone: str = "UTC",
        session: requests.Session | None = None,
        timeout: int = 30,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.user = user
        self.time_zone = time_zone
        self.tz = ZoneInfo(time_zone)
        self.session = session or requests.Session()
        self.timeout = timeout
        self._token: str | None = None

    # ------------------------------------------------------------------
    # Auth + transport
    # ------------------------------------------------------------------
    def get_token(self) -> str:
        """Get an app-only access token using client credentials flow."""
        if self._token:
            return self._token
        try:
            resp = self.session.post(
                LOGIN_URL.format(tenant_id=self.tenant_id),
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": "https://graph.microsoft.com/.default",
                    "grant_type": "client_credentials",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.error("graph_auth_failed", error=str(e))
            raise CalendarApiError(f"Graph token request failed: {e}") from e

        if resp.status_code != 200:
            log.error("graph_auth_failed", status=resp.status_code, body=resp.text[:200])
            raise CalendarApiError("Graph authentication failed", resp.status_code)
        try:
            self._token = resp.json()["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            log.error("graph_auth_failed", error="malformed token response")
            raise CalendarApiError("Graph token response had no access_token") from e
        return self._token

    def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: dict | None = None,
        params: dict | None = None,
    ) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {self.get_token()}",
            "Prefer": (
                f'outlook.timezone="{self.time_zone}", '
                'outlook.body-content-type="text"'
            ),
        }
        if not url.startswith("http"):
            url = f"{GRAPH_BASE}{url}"
        try:
            resp = self.session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise CalendarApiError(f"{method} {url} failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError(f"{method} {url} throttled")
        if resp.status_code >= 400:
            raise CalendarApiError(
                f"{method} {url}: {resp.status_code} {resp.text[:200]}",
                resp.status_code,
            )
        return resp

    def _calendar_path(self, calendar_id: str) -> str:
        if calendar_id:
            return f"/users/{self.user}/calendars/{calendar_id}"
        return f"/users/{self.user}/calendar"

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def list_upcoming_events(
        self,
        calendar_id: str,
        title_prefix: str = "",
        *,
        now: datetime | None = None,
    ) -> list[CalendarEvent]:
        """List events starting from now, optionally filtered by subject prefix.

        Follows @odata.nextLink pagination.
        """
        # $filter compares start/dateTime in UTC whatever the Prefer header says
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        filters = [f"start/dateTime ge '{now.replace(tzinfo=None).isoformat(timespec='seconds')}'"]
        if title_prefix:
            escaped = title_prefix.replace("'", "''")
            filters.append(f"startsWith(subject,'{escaped}')")

        url = f"{self._calendar_path(calendar_id)}/events"
        params: dict | None = {
            "$filter": " and ".join(filters),
            "$select": _SELECT,
            "$top": "100",
        }
        events: list[CalendarEvent] = []
        while url:
            data = self._request("GET", url, params=params).json()
            events.extend(self._event_from_json(item) for item in data.get("value", []))
            url = data.get("@odata.nextLink")
            params = None  # nextLink already carries the query
        log.debug("graph_events_listed", count=len(events))
        return events

    def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        resp = self._request(
            "POST",
            f"{self._calendar_path(calendar_id)}/events",
            json_body=self._event_to_json(event),
        )
        return event.model_copy(update={"event_id": resp.json().get("id")})

    def update_event(self, calendar_id: str, event_id: str, event: CalendarEvent) -> None:
        self._request(
            "PATCH",
            f"{self._calendar_path(calendar_id)}/events/{event_id}",
            json_body=self._event_to_json(event),
        )

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        self._request("DELETE", f"{self._calendar_path(calendar_id)}/events/{event_id}")

    def ensure_category(
        self, name: str = AVAILABLE_CATEGORY, color: str = AVAILABLE_COLOR
    ) -> None:
        """Make sure the colour category exists on the mailbox. Idempotent."""
        path = f"/users/{self.user}/outlook/masterCategories"
        existing = {
            cat.get("displayName")
            for cat in self._request("GET", path).json().get("value", [])
        }
        if name in existing:
            return
        self._request("POST", path, json_body={"displayName": name, "color": color})
        log.info("graph_category_created", name=name, color=color)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------
    def _local_iso(self, value: datetime) -> str:
        return value.astimezone(self.tz).replace(tzinfo=None).isoformat(timespec="seconds")

    def _event_to_json(self, event: CalendarEvent) -> dict:
        """Build the Graph API event JSON for one availability marker."""
        return {
            "subject": event.title,
            "body": {"contentType": "text", "content": event.description},
            "start": {"dateTime": self._local_iso(event.start), "timeZone": self.time_zone},
            "end": {"dateTime": self._local_iso(event.end), "timeZone": self.time_zone},
            "showAs": "free",
            "isReminderOn": False,
            "categories": list(event.categories),
        }

    def _event_from_json(self, item: dict) -> CalendarEvent:
        return CalendarEvent(
            event_id=item.get("id"),
            title=item.get("subject") or "",
            start=self._parse_graph_time(item.get("start") or {}),
            end=self._parse_graph_time(item.get("end") or {}),
            description=((item.get("body") or {}).get("content") or "").strip(),
            categories=item.get("categories") or [],
        )

    def _parse_graph_time(self, value: dict) -> datetime:
        # Graph returns "2026-03-02T23:00:00.0000000" in the zone named alongside
        text = (value.get("dateTime") or "").split(".")[0]
        zone = value.get("timeZone") or self.time_zone
        try:
            tz = ZoneInfo(zone)
        except (KeyError, ValueError):
            tz = timezone.utc if zone.upper() == "UTC" else self.tz
        return datetime.fromisoformat(text).replace(tzinfo=tz)

import json
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
import requests

from src.slotwatch.errors import CalendarApiError, RateLimitError
from src.slotwatch.graph import GraphCalendarClient
from src.slotwatch.models import CalendarEvent, DaySlotStatus
from src.slotwatch.reconciler import CalendarReconciler
from src.slotwatch.reducer import build_snapshot

CHICAGO = ZoneInfo("America/Chicago")


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, data=None, timeout=None):
        return FakeResponse(200, {"access_token": "token-123"})

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        self.requests.append({"method": method, "url": url, "headers": headers, "json": json, "params": params})
        return self.responses.pop(0)


def client(responses):
    session = FakeSession(responses)
    return (
        GraphCalendarClient(
            "tenant", "client", "secret", "makerspace@example.org",
            time_zone="America/Chicago", session=session,
        ),
        session,
    )


def graph_event(event_id, start="2026-03-02T23:00:00.0000000"):
    return {
        "id": event_id,
        "subject": "Available: Laser Cutter",
        "body": {"contentType": "text", "content": "Laser Cutter\r\n"},
        "start": {"dateTime": start, "timeZone": "America/Chicago"},
        "end": {"dateTime": "2026-03-03T00:00:00.0000000", "timeZone": "America/Chicago"},
        "categories": ["Available"],
    }


def test_list_follows_next_link_and_parses_times():
    graph, session = client(
        [
            FakeResponse(200, {"value": [graph_event("a")], "@odata.nextLink": "https://graph.microsoft.com/v1.0/next"}),
            FakeResponse(200, {"value": [graph_event("b", "2026-03-03T22:00:00.0000000")]}),
        ]
    )
    events = graph.list_upcoming_events(
        "", "Available:", now=datetime(2026, 3, 1, 18, tzinfo=timezone.utc)
    )

    assert [e.event_id for e in events] == ["a", "b"]
    assert events[0].start == datetime(2026, 3, 2, 23, 0, tzinfo=CHICAGO)
    assert events[0].description == "Laser Cutter"

    first = session.requests[0]
    assert first["url"].endswith("/users/makerspace@example.org/calendar/events")
    assert "startsWith(subject,'Available:')" in first["params"]["$filter"]
    assert "start/dateTime ge '2026-03-01T18:00:00'" in first["params"]["$filter"]
    assert 'outlook.timezone="America/Chicago"' in first["headers"]["Prefer"]
    assert first["headers"]["Authorization"] == "Bearer token-123"
    assert session.requests[1]["params"] is None


def test_create_sends_local_times_and_returns_id():
    graph, session = client([FakeResponse(201, {"id": "new-1"})])
    start = datetime(2026, 3, 2, 23, 0, tzinfo=CHICAGO)
    event = CalendarEvent(
        title="Available: Laser Cutter",
        start=start,
        end=start + timedelta(hours=1),
        description="Laser Cutter",
        categories=["Available"],
    )

    created = graph.create_event("cal-1", event)

    assert created.event_id == "new-1"
    body = session.requests[0]["json"]
    assert session.requests[0]["url"].endswith("/users/makerspace@example.org/calendars/cal-1/events")
    assert body["start"] == {"dateTime": "2026-03-02T23:00:00", "timeZone": "America/Chicago"}
    assert body["end"] == {"dateTime": "2026-03-03T00:00:00", "timeZone": "America/Chicago"}
    assert body["categories"] == ["Available"]
    assert body["showAs"] == "free"


def test_errors_are_classified():
    graph, _ = client([FakeResponse(429), FakeResponse(404)])
    with pytest.raises(RateLimitError):
        graph.delete_event("", "x")
    with pytest.raises(CalendarApiError) as info:
        graph.delete_event("", "y")
    assert info.value.status_code == 404


def test_ensure_category_creates_missing_only():
    graph, session = client(
        [FakeResponse(200, {"value": [{"displayName": "Other"}]}), FakeResponse(201, {})]
    )
    graph.ensure_category()
    assert session.requests[1]["json"] == {"displayName": "Available", "color": "preset4"}

    graph, session = client([FakeResponse(200, {"value": [{"displayName": "Available"}]})])
    graph.ensure_category()
    assert len(session.requests) == 1


class DownSession(FakeSession):
    """Token endpoint unreachable."""

    def __init__(self):
        super().__init__([])

    def post(self, url, data=None, timeout=None):
        raise requests.ConnectionError("login.microsoftonline.com unreachable")


class HtmlTokenSession(FakeSession):
    """Token endpoint answers 200 with a proxy error page instead of JSON."""

    def __init__(self):
        super().__init__([])

    def post(self, url, data=None, timeout=None):
        response = FakeResponse(200)
        response.json = lambda: json.loads("<html>gateway</html>")
        return response


def _client_with(session):
    return GraphCalendarClient(
        "tenant", "client", "secret", "makerspace@example.org",
        time_zone="America/Chicago", session=session,
    )


def test_token_network_failure_is_a_calendar_error():
    graph = _client_with(DownSession())
    with pytest.raises(CalendarApiError):
        graph.get_token()
    with pytest.raises(CalendarApiError):
        graph.ensure_category()


def test_non_json_token_response_is_a_calendar_error():
    graph = _client_with(HtmlTokenSession())
    with pytest.raises(CalendarApiError):
        graph.list_upcoming_events("", "Available:")


def test_reconcile_survives_unreachable_graph():
    graph = _client_with(DownSession())
    snapshot = build_snapshot(
        [
            DaySlotStatus(
                equipment="Laser Cutter",
                date="Monday, March 2, 2026",
                last_time="11:00pm",
                last_available=True,
            )
        ]
    )

    result = CalendarReconciler(graph, time_zone="America/Chicago").reconcile(
        snapshot, now=datetime(2026, 3, 1, 18, tzinfo=timezone.utc)
    )

    assert result.failed == 1
    assert result.mutations == 0

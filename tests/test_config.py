import pytest
from pydantic import ValidationError

from src.slotwatch.config import DEFAULT_WATCH_LIST, WatchConfig


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("GITHUB_STEP_SUMMARY", raising=False)
    monkeypatch.chdir("/")  # keep a developer's .env out of the way


def test_defaults():
    config = WatchConfig()
    assert config.watch_list == DEFAULT_WATCH_LIST
    assert config.page_ceiling == 10
    assert config.settle_delay_ms == 3000
    assert config.email_enabled is False
    assert config.calendar_sync_enabled is False
    assert config.resolved_summary_path() is None


def test_watch_list_from_env_comma_separated(monkeypatch):
    monkeypatch.setenv("SLOTWATCH_WATCH_LIST", " Laser Cutter , Vinyl Cutter,,Laser Cutter")
    assert WatchConfig().watch_list == ["Laser Cutter", "Vinyl Cutter"]


def test_watch_list_from_env_json(monkeypatch):
    monkeypatch.setenv("SLOTWATCH_WATCH_LIST", '["Resin Printer -Formlabs Form 3 & Dell PC"]')
    assert WatchConfig().watch_list == ["Resin Printer -Formlabs Form 3 & Dell PC"]


def test_empty_watch_list_is_rejected():
    with pytest.raises(ValidationError):
        WatchConfig(watch_list=[" "])


def test_unknown_time_zone_is_rejected():
    with pytest.raises(ValidationError):
        WatchConfig(time_zone="Mars/Olympus_Mons")


def test_page_ceiling_must_be_positive():
    with pytest.raises(ValidationError):
        WatchConfig(page_ceiling=0)


def test_recipients_and_feature_flags(monkeypatch):
    monkeypatch.setenv("SLOTWATCH_SMTP_SERVER", "smtp.example.org")
    monkeypatch.setenv("SLOTWATCH_EMAIL_TO", "a@example.org, b@example.org")
    monkeypatch.setenv("SLOTWATCH_GRAPH_TENANT_ID", "tenant")
    monkeypatch.setenv("SLOTWATCH_GRAPH_CLIENT_ID", "client")
    monkeypatch.setenv("SLOTWATCH_GRAPH_CLIENT_SECRET", "secret")
    monkeypatch.setenv("SLOTWATCH_GRAPH_USER", "makerspace@example.org")
    config = WatchConfig()
    assert config.email_to == ["a@example.org", "b@example.org"]
    assert config.email_enabled is True
    assert config.calendar_sync_enabled is True


def test_summary_path_falls_back_to_ci(monkeypatch):
    monkeypatch.setenv("GITHUB_STEP_SUMMARY", "/tmp/step-summary.md")
    assert WatchConfig().resolved_summary_path() == "/tmp/step-summary.md"
    assert WatchConfig(summary_path="out.md").resolved_summary_path() == "out.md"

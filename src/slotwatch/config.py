"""Watcher configuration loaded from environment variables.

Every setting can be overridden with a ``SLOTWATCH_``-prefixed environment
variable or a ``.env`` file in the project root.
"""

import json
import os
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_WATCH_LIST = [
    "Soldering Iron & Electronics Rework Station",
    "Vinyl Cutter & Heat Press w/PC",
    "Resin Printer -Formlabs Form 3 & Dell PC",
]


def _split_list(value: object) -> object:
    """Accept a JSON list or a comma-separated string for list settings."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            return json.loads(text)
        return [part for part in text.split(",") if part.strip()]
    return value


class WatchConfig(BaseSettings):
    """Slot watcher configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Reservation calendar (LibCal timeline view, rendered client-side)
    calendar_url: str = Field(
        default="https://libcal.jocolibrary.org/reserve/makerspace",
        description="Reservation calendar page to scan",
    )
    watch_list: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_WATCH_LIST),
        description="Exact equipment names to watch (JSON list or comma-separated)",
    )
    time_zone: str = Field(
        default="America/Chicago",
        description="IANA time zone the calendar's slot times are expressed in",
    )

    # Pagination
    page_ceiling: int = Field(
        default=10,
        ge=1,
        description="Maximum number of calendar pages to visit per run",
    )
    settle_delay_ms: int = Field(
        default=3000,
        ge=0,
        description="Wait after each page transition before scraping",
    )
    navigation_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        description="Timeout for the initial calendar page load",
    )
    headless: bool = Field(
        default=True,
        description="Run Chromium without a visible window",
    )

    # Paths
    state_file: str = Field(
        default="data/state/previous-state.json",
        description="JSON file holding the last snapshot",
    )
    summary_path: str | None = Field(
        default=None,
        description="Markdown run summary file (defaults to $GITHUB_STEP_SUMMARY)",
    )

    # Email notifications (disabled unless server and recipients are set)
    smtp_server: str = Field(default="", description="SMTP server, e.g. smtp.gmail.com")
    smtp_port: int = Field(default=587, description="SMTP port (STARTTLS)")
    smtp_user: str = Field(default="", description="SMTP login user")
    smtp_password: SecretStr = Field(
        default=SecretStr(""), description="SMTP password or app password"
    )
    email_from: str = Field(default="", description="Sender address (defaults to smtp_user)")
    email_to: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Recipient addresses (JSON list or comma-separated)",
    )

    # Microsoft 365 calendar mirror (disabled unless credentials are set)
    graph_tenant_id: str = Field(default="", description="Azure AD tenant ID")
    graph_client_id: str = Field(default="", description="App registration client ID")
    graph_client_secret: SecretStr = Field(
        default=SecretStr(""), description="App registration client secret"
    )
    graph_user: str = Field(default="", description="Mailbox (UPN) owning the calendar")
    calendar_id: str = Field(
        default="",
        description="Calendar ID inside the mailbox; empty means the default calendar",
    )
    event_title_prefix: str = Field(
        default="Available:",
        description="Subject prefix identifying events owned by the watcher",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for scheduled runs)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "SLOTWATCH_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("watch_list", mode="before")
    @classmethod
    def _parse_watch_list(cls, value: object) -> object:
        return _split_list(value)

    @field_validator("watch_list")
    @classmethod
    def _check_watch_list(cls, value: list[str]) -> list[str]:
        names: list[str] = []
        for name in value:
            name = name.strip()
            if name and name not in names:
                names.append(name)
        if not names:
            raise ValueError("watch_list must name at least one piece of equipment")
        return names

    @field_validator("email_to", mode="before")
    @classmethod
    def _parse_recipients(cls, value: object) -> object:
        return _split_list(value)

    @field_validator("email_to")
    @classmethod
    def _strip_recipients(cls, value: list[str]) -> list[str]:
        return [addr.strip() for addr in value if addr.strip()]

    @field_validator("time_zone")
    @classmethod
    def _check_time_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone {value!r}") from e
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_server and self.email_to)

    @property
    def calendar_sync_enabled(self) -> bool:
        return bool(
            self.graph_tenant_id
            and self.graph_client_id
            and self.graph_client_secret.get_secret_value()
            and self.graph_user
        )

    def resolved_summary_path(self) -> str | None:
        """Summary file path, falling back to the GitHub Actions step summary."""
        return self.summary_path or os.environ.get("GITHUB_STEP_SUMMARY") or None


# Singleton pattern
_config: WatchConfig | None = None


def get_config() -> WatchConfig:
    """Get the watcher configuration singleton.

    Returns:
        WatchConfig: Watcher configuration instance
    """
    global _config
    if _config is None:
        _config = WatchConfig()
    return _config

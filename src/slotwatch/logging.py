"""structlog setup for the slot watcher.

Console output when run by hand, JSON lines under cron / CI. Every line of
one check carries the same run_id and calendar_url (bound once per run with
bind_run_context), so a scheduled job's log can be grepped per run.
"""

import logging
import sys
import uuid

import structlog

# Chatty at INFO; their detail is only useful when debugging the browser or HTTP.
QUIET_LOGGERS = ("asyncio", "urllib3", "playwright")


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog and route stdlib logging to the same stream.

    Args:
        json_output: JSON lines (scheduled runs) instead of console format.
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(sys.stdout)]
    root.setLevel(numeric_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def bind_run_context(calendar_url: str, run_id: str | None = None) -> str:
    """Attach run_id and calendar_url to every log line of this check.

    Replaces any context left over from a previous run in the same process.

    Returns:
        The run id in use.
    """
    run_id = run_id or uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_id=run_id, calendar_url=calendar_url)
    return run_id


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger for one module (pass __name__)."""
    return structlog.get_logger(name)

"""Error hierarchy for the slot watcher.

Transient failures (page timeouts, throttled API calls) are retried by the
tenacity decorators that wrap navigation; permanent failures are not.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(2))
    async def load(self, url: str):
        ...
"""


class SlotWatchError(Exception):
    """Base exception for all slot watcher errors."""

    pass


class TransientError(SlotWatchError):
    """Temporary failure that may succeed on retry.

    Examples: navigation timeouts, 503 Service Unavailable, calendar still rendering.
    """

    pass


class RateLimitError(TransientError):
    """Rate limit exceeded (HTTP 429) on an external API."""

    pass


class PageReadError(TransientError):
    """The browser failed while reading the current calendar range."""

    pass


class PermanentError(SlotWatchError):
    """Failure that won't succeed on retry."""

    pass


class CalendarLoadError(PermanentError):
    """The reservation calendar could not be loaded at all.

    Fatal for the run: nothing is persisted so the next run still diffs
    against the last known-good snapshot.
    """

    pass


class CalendarApiError(PermanentError):
    """The external calendar API rejected a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

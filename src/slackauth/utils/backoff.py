"""Retry delays for Slack Web API rate limits (HTTP 429)."""

from typing import Iterator, Optional


def fibonacci_delays(max_seconds: int = 60) -> Iterator[int]:
    """Yield 1, 1, 2, 3, 5, 8, ... seconds, capped at max_seconds."""
    a, b = 1, 1
    while True:
        yield min(a, max_seconds)
        a, b = b, a + b


def parse_retry_after(value: Optional[str]) -> int:
    """Seconds from a Retry-After header; 0 if absent or not a plain integer."""
    if not value:
        return 0
    value = value.strip()
    return int(value) if value.isdigit() else 0


class RateLimitBackoff:
    """
    Delay schedule for the 429 retries of a single API call.

    Delays follow the Fibonacci sequence; Slack's Retry-After wins when it
    asks for longer. Both are capped at max_seconds.
    """

    def __init__(self, max_seconds: int = 60):
        self.max_seconds = max_seconds
        self.attempt = 0
        self._delays = fibonacci_delays(max_seconds)

    def delay(self, retry_after: Optional[str] = None) -> int:
        """Return the next wait in seconds."""
        self.attempt += 1
        hint = min(parse_retry_after(retry_after), self.max_seconds)
        return max(next(self._delays), hint)

"""Retry and timeout policy.

Pure functions for backoff delay, jitter and retryability, plus the
per-attempt deadline used by the request executor.

Delays are exponential without a cap: ``500ms * 2**attempt`` plus
0-250ms of jitter.  A server-supplied ``Retry-After`` replaces the
exponential base but still receives jitter.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from types import TracebackType

from warpmind.errors import RequestTimeoutError
from warpmind.types import RetryDecision, RetryReason

_logger = logging.getLogger(__name__)

BASE_DELAY_MS = 500
MAX_JITTER_MS = 250

_RETRYABLE_STATUS: dict[int, RetryReason] = {
    429: RetryReason.RATE_LIMITED,
    502: RetryReason.BAD_GATEWAY,
    503: RetryReason.SERVICE_UNAVAILABLE,
    524: RetryReason.GATEWAY_TIMEOUT,
}


def is_retryable(status_code: int) -> bool:
    """True exactly for 429, 502, 503 and 524."""
    return status_code in _RETRYABLE_STATUS


def add_jitter(base_ms: float) -> float:
    """Add 0-250ms of uniform random jitter."""
    return base_ms + random.random() * MAX_JITTER_MS


def parse_retry_after(value: str | None) -> float | None:
    """Return the ``Retry-After`` header as seconds, or None if unusable.

    Accepts delta-seconds (``"5"``, ``"1.5"``) and HTTP-dates.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            _logger.debug("Unparseable Retry-After header: %r", value)
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return max(seconds, 0.0)


def compute_delay(attempt_index: int, retry_after: str | float | None = None) -> float:
    """Delay in milliseconds before retry number ``attempt_index`` (0-based)."""
    if isinstance(retry_after, (int, float)):
        seconds: float | None = max(float(retry_after), 0.0)
    else:
        seconds = parse_retry_after(retry_after)
    if seconds is not None:
        return add_jitter(seconds * 1000)
    return add_jitter(BASE_DELAY_MS * (2 ** attempt_index))


def retry_decision(
    attempt_index: int,
    *,
    status_code: int | None = None,
    network_error: bool = False,
    retry_after: str | None = None,
) -> RetryDecision:
    """Classify one failed attempt.

    Exactly one of ``status_code`` / ``network_error`` describes the failure.
    Whether attempts remain is the caller's concern.
    """
    if network_error:
        reason: RetryReason | None = RetryReason.NETWORK_ERROR
        retry_after = None
    elif status_code is not None:
        reason = _RETRYABLE_STATUS.get(status_code)
    else:
        reason = None

    if reason is None:
        return RetryDecision(should_retry=False)
    return RetryDecision(
        should_retry=True,
        delay_ms=compute_delay(attempt_index, retry_after),
        reason=reason,
    )


async def sleep_ms(ms: float) -> None:
    """Wait ``ms`` milliseconds."""
    await asyncio.sleep(ms / 1000)


class AttemptDeadline:
    """Cancellable wall-clock deadline owned by a single request attempt.

    Usage::

        async with AttemptDeadline(30000) as deadline:
            resp = await client.send(request)

    On expiry the wrapped I/O is cancelled and ``RequestTimeoutError`` is
    raised.  The underlying timer is released exactly once, on exit.
    """

    def __init__(self, timeout_ms: float) -> None:
        self.timeout_ms = timeout_ms
        self.expired = False
        self.released = False
        self._timeout: asyncio.Timeout | None = None
        self._started_at = 0.0

    @property
    def remaining_ms(self) -> float:
        if self._timeout is None or self.released:
            return 0.0
        elapsed = (time.monotonic() - self._started_at) * 1000
        return max(self.timeout_ms - elapsed, 0.0)

    async def __aenter__(self) -> AttemptDeadline:
        if self._timeout is not None:
            raise RuntimeError("AttemptDeadline cannot be reused")
        self._started_at = time.monotonic()
        self._timeout = asyncio.timeout(self.timeout_ms / 1000)
        await self._timeout.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._timeout is None:
            raise RuntimeError("AttemptDeadline exited without being entered")
        try:
            await self._timeout.__aexit__(exc_type, exc, tb)
        except TimeoutError as e:
            if self._timeout.expired():
                self.expired = True
                raise RequestTimeoutError(self.timeout_ms) from e
            raise
        finally:
            self.released = True

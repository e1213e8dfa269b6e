"""Retry schedule for failed webhook deliveries."""

from __future__ import annotations

from datetime import datetime, timedelta

from signet.models import ensure_utc, utc_now

# Delay before retry N, indexed by the task's retry count
RETRY_DELAYS_MINUTES: tuple[int, ...] = (1, 5, 15, 30, 60)

# Delay used past the end of the table
MAX_DELAY_MINUTES = 60

# Retry ceiling: a task whose count reaches this is dropped
MAX_RETRY_ATTEMPTS = 5

# Non-5xx statuses worth retrying
RETRYABLE_STATUS_CODES = frozenset({408, 429})


def delay_minutes(retry_count: int) -> int:
    """Minutes to wait before the retry at ``retry_count``."""
    if 0 <= retry_count < len(RETRY_DELAYS_MINUTES):
        return RETRY_DELAYS_MINUTES[retry_count]
    return MAX_DELAY_MINUTES


def next_retry_at(retry_count: int, now: datetime | None = None) -> datetime:
    """When the retry at ``retry_count`` becomes due."""
    base = ensure_utc(now) if now is not None else utc_now()
    return base + timedelta(minutes=delay_minutes(retry_count))


def is_retryable(status_code: int) -> bool:
    """Whether a failed attempt should be retried.

    Status 0 stands for "no response" (connection error or timeout).
    """
    return status_code == 0 or status_code >= 500 or status_code in RETRYABLE_STATUS_CODES


__all__ = [
    "MAX_DELAY_MINUTES",
    "MAX_RETRY_ATTEMPTS",
    "RETRYABLE_STATUS_CODES",
    "RETRY_DELAYS_MINUTES",
    "delay_minutes",
    "is_retryable",
    "next_retry_at",
]

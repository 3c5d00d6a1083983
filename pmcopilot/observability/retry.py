"""
Retry executor with exponential backoff and tracking.

Wraps tracing service calls so a failing dependency degrades to ``None``
instead of an exception:
- Authentication failures stop immediately
- Everything else is retried up to ``max_retries`` attempts
- Delay before attempt k+1 is ``retry_delay_ms * 2**(k-1)``

Retries and give-ups are reported to the active TracingRetryStats, if any.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pmcopilot.exceptions import ConfigError
from pmcopilot.observability.errors import ClassifiedError, ErrorKind
from pmcopilot.observability.tracking import current_retry_stats

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for one invocation.

    Attributes:
        max_retries: Total attempts, including the first one.
        retry_delay_ms: Base delay for exponential backoff.
        detailed_logging: Log every failed attempt, not only the final failure.
    """

    max_retries: int = 3
    retry_delay_ms: int = 1000
    detailed_logging: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ConfigError(
                "max_retries must be >= 1", details={"max_retries": self.max_retries}
            )
        if self.retry_delay_ms < 0:
            raise ConfigError(
                "retry_delay_ms must be >= 0",
                details={"retry_delay_ms": self.retry_delay_ms},
            )

    def merge(self, **overrides: Any) -> "RetryPolicy":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        return dataclasses.replace(self, **changes)

    def backoff_seconds(self, attempt: int) -> float:
        """Delay to wait after a failed ``attempt`` (1-based)."""
        return self.retry_delay_ms * (2 ** (attempt - 1)) / 1000.0


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    context: str,
    policy: Optional[RetryPolicy] = None,
    *,
    max_retries: Optional[int] = None,
    retry_delay_ms: Optional[int] = None,
    sleep: Optional[SleepFunc] = None,
) -> Optional[T]:
    """
    Run ``operation`` with bounded retries and exponential backoff.

    Args:
        operation: Zero-argument coroutine function to attempt.
        context: Label used only in log lines.
        policy: Base policy; defaults to ``RetryPolicy()``.
        max_retries: Per-call override of ``policy.max_retries``.
        retry_delay_ms: Per-call override of ``policy.retry_delay_ms``.
        sleep: Awaitable sleep taking seconds; defaults to ``asyncio.sleep``.

    Returns:
        The first successful result, or None when every attempt failed or
        an authentication error stopped the sequence.
    """
    effective = (policy or RetryPolicy()).merge(
        max_retries=max_retries, retry_delay_ms=retry_delay_ms
    )
    do_sleep = sleep or asyncio.sleep

    last_error: Optional[Exception] = None
    attempts = 0

    for attempt in range(1, effective.max_retries + 1):
        attempts = attempt
        try:
            return await operation()
        except Exception as exc:
            last_error = exc
            failure = ClassifiedError.from_exception(exc, attempt)

        if effective.detailed_logging:
            logger.warning(
                "Observability operation failed (attempt %d/%d) - %s: %s",
                attempt,
                effective.max_retries,
                context,
                failure.to_dict(),
            )

        if failure.kind is ErrorKind.AUTHENTICATION:
            break

        if attempt < effective.max_retries:
            delay = effective.backoff_seconds(attempt)

            stats = current_retry_stats()
            if stats is not None:
                stats.record_retry(failure.kind, delay)

            await do_sleep(delay)

    stats = current_retry_stats()
    if stats is not None:
        stats.record_give_up(context)
    logger.error(
        "Observability operation failed after %d attempt(s) - %s: %r",
        attempts,
        context,
        last_error,
    )
    return None

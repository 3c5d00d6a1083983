"""
Per-request accounting of tracing retries.

A PRD operation makes several tracing calls (events, a trace, metrics).
Each goes through ``with_retry`` on its own, so a request that limped
through three backoffs looks identical to a clean one from the outside.
``track_tracing_retries`` scopes a ``TracingRetryStats`` to the current
task; ``with_retry`` reports into it when one is active.

Usage:
    with track_tracing_retries() as stats:
        await client.track_event("prd_generation_started")
    if stats.degraded:
        logger.warning("lost: %s", stats.failed_operations)
"""

from __future__ import annotations

import contextlib
import contextvars
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from pmcopilot.observability.errors import ErrorKind


@dataclass
class TracingRetryStats:
    """
    Retries and give-ups seen by tracing calls during one request.

    Attributes:
        retries: Retries scheduled, not counting first attempts.
        retries_by_kind: Retries broken down by failure classification.
        backoff_seconds: Total time spent waiting between attempts.
        failed_operations: Contexts of calls that ended returning None.
    """

    retries: int = 0
    retries_by_kind: Dict[ErrorKind, int] = field(default_factory=dict)
    backoff_seconds: float = 0.0
    failed_operations: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failed_operations)

    def record_retry(self, kind: ErrorKind, backoff_seconds: float) -> None:
        self.retries += 1
        self.retries_by_kind[kind] = self.retries_by_kind.get(kind, 0) + 1
        self.backoff_seconds += backoff_seconds

    def record_give_up(self, context: str) -> None:
        self.failed_operations.append(context)

    def summary(self) -> Dict[str, Any]:
        """Flat, JSON-ready view for event metadata."""
        return {
            "tracing_retries": self.retries,
            "tracing_retries_by_kind": {
                kind.value: count for kind, count in self.retries_by_kind.items()
            },
            "tracing_backoff_seconds": round(self.backoff_seconds, 3),
            "tracing_failed_operations": list(self.failed_operations),
        }


_stats_var: contextvars.ContextVar[Optional[TracingRetryStats]] = contextvars.ContextVar(
    "pmcopilot_tracing_retry_stats", default=None
)


def current_retry_stats() -> Optional[TracingRetryStats]:
    """Stats for the enclosing ``track_tracing_retries`` block, if any."""
    return _stats_var.get()


@contextlib.contextmanager
def track_tracing_retries() -> Iterator[TracingRetryStats]:
    stats = TracingRetryStats()
    token = _stats_var.set(stats)
    try:
        yield stats
    finally:
        _stats_var.reset(token)

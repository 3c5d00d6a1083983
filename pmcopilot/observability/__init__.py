"""
Observability client resilience layer.

Wraps the tracing service with retries, exponential backoff and a cached
health check so tracing failures never break request handling.

Usage:
    from pmcopilot.observability import ObservabilityClient, with_retry

    client = ObservabilityClient.from_settings()
    trace = await client.create_prd_trace("prd-1")
    result = await with_retry(do_work, "do-work", max_retries=2)
"""

from pmcopilot.observability.client import ObservabilityClient
from pmcopilot.observability.errors import ClassifiedError, ErrorKind, classify_error
from pmcopilot.observability.health import HealthCache, HealthStatus
from pmcopilot.observability.ingestion import (
    EventHandle,
    IngestionClient,
    TraceHandle,
    TracingBackend,
)
from pmcopilot.observability.retry import RetryPolicy, with_retry
from pmcopilot.observability.tracking import (
    TracingRetryStats,
    current_retry_stats,
    track_tracing_retries,
)

__all__ = [
    "ObservabilityClient",
    "ClassifiedError",
    "ErrorKind",
    "classify_error",
    "HealthCache",
    "HealthStatus",
    "EventHandle",
    "IngestionClient",
    "TraceHandle",
    "TracingBackend",
    "RetryPolicy",
    "with_retry",
    "TracingRetryStats",
    "current_retry_stats",
    "track_tracing_retries",
]

"""
Trace/event emitter over the tracing service.

ObservabilityClient owns one ingestion backend, one default RetryPolicy and
one HealthCache. Every public method absorbs failures: callers get None (or
False) when tracing is unavailable, and primary request flow never sees an
exception from here.

Usage:
    client = ObservabilityClient.from_settings()
    await client.start()

    trace = await client.create_prd_trace("prd-1", user_id="u1")
    await client.track_event("prd_generation_started", {"prd_id": "prd-1"})
    await client.submit_score(trace.id, 5, comment="great")

    await client.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pmcopilot import __version__
from pmcopilot.config import DEFAULT_OBSERVABILITY_BASE_URL, Settings, get_settings
from pmcopilot.observability.health import HealthCache, HealthStatus
from pmcopilot.observability.ingestion import (
    EventHandle,
    IngestionClient,
    TraceHandle,
    TracingBackend,
)
from pmcopilot.observability.retry import RetryPolicy, SleepFunc, with_retry

logger = logging.getLogger(__name__)

APPLICATION_NAME = "pm-copilot"

PRD_TRACE_NAME = "prd-generation"
CRITIQUE_TRACE_NAME = "prd-critique"
QUESTION_TRACE_NAME = "prd-question"
HEALTH_TRACE_NAME = "health-check"
FEEDBACK_SCORE_NAME = "user-feedback"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ObservabilityClient:
    """
    Resilience layer around the tracing service.

    Args:
        backend: Tracing SDK; None disables every call.
        policy: Default retry policy; per-call overrides merge into it.
        base_url: Reported in the health status.
        has_public_key: Reported in the health status.
        has_secret_key: Reported in the health status.
        health_check_interval_ms: Health cache TTL.
        flush_interval_seconds: Period of the background flush loop.
        sleep: Backoff sleep, injectable for tests.
        clock: Monotonic clock for the health cache.
    """

    def __init__(
        self,
        backend: Optional[TracingBackend] = None,
        *,
        policy: Optional[RetryPolicy] = None,
        base_url: str = DEFAULT_OBSERVABILITY_BASE_URL,
        has_public_key: Optional[bool] = None,
        has_secret_key: Optional[bool] = None,
        health_check_interval_ms: int = 30000,
        flush_interval_seconds: float = 5.0,
        sleep: Optional[SleepFunc] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._policy = policy or RetryPolicy()
        self._base_url = base_url
        self._has_public_key = backend is not None if has_public_key is None else has_public_key
        self._has_secret_key = backend is not None if has_secret_key is None else has_secret_key
        self._flush_interval_seconds = flush_interval_seconds
        self._sleep = sleep
        self._flush_task: Optional["asyncio.Task[None]"] = None
        self._health = HealthCache(
            self._probe,
            enabled=backend is not None,
            interval_ms=health_check_interval_ms,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ObservabilityClient":
        settings = settings or get_settings()
        backend: Optional[TracingBackend] = None
        if settings.observability_enabled:
            backend = IngestionClient(
                public_key=settings.observability_public_key or "",
                secret_key=settings.observability_secret_key or "",
                base_url=settings.observability_base_url,
            )
            logger.info(
                "Observability enabled. Base URL: %s", settings.observability_base_url
            )
        else:
            logger.warning(
                "Observability is not configured. Set OBSERVABILITY_PUBLIC_KEY and "
                "OBSERVABILITY_SECRET_KEY to enable tracing."
            )
        return cls(
            backend,
            policy=RetryPolicy(
                max_retries=settings.max_retries,
                retry_delay_ms=settings.retry_delay_ms,
                detailed_logging=settings.detailed_logging,
            ),
            base_url=settings.observability_base_url,
            has_public_key=bool(settings.observability_public_key),
            has_secret_key=bool(settings.observability_secret_key),
            health_check_interval_ms=settings.health_check_interval_ms,
            flush_interval_seconds=settings.flush_interval_seconds,
        )

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def health(self) -> HealthStatus:
        return self._health.status

    async def _retry(self, operation, context: str, **overrides: Any):
        return await with_retry(
            operation, context, self._policy, sleep=self._sleep, **overrides
        )

    @staticmethod
    def _metadata(
        type_: str, extra: Optional[Dict[str, Any]], **fixed: Any
    ) -> Dict[str, Any]:
        # Fixed fields win over caller metadata.
        merged = dict(extra or {})
        merged.update(
            {key: value for key, value in fixed.items() if value is not None}
        )
        merged.update(
            {
                "application": APPLICATION_NAME,
                "version": __version__,
                "timestamp": _utc_now_iso(),
                "type": type_,
            }
        )
        return merged

    # ------------------------------------------------------------------
    # Traces
    # ------------------------------------------------------------------

    async def create_trace(
        self,
        name: str,
        subject_id: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        trace_type: str = "prd_generation",
    ) -> Optional[TraceHandle]:
        """
        Create a trace for ``subject_id``.

        Returns:
            The trace handle, or None when tracing is disabled or failed.
        """
        backend = self._backend
        if backend is None:
            return None

        async def _create() -> TraceHandle:
            return await backend.create_trace(
                name=name,
                user_id=user_id,
                session_id=session_id,
                metadata=self._metadata(trace_type, metadata, prd_id=subject_id),
            )

        trace = await self._retry(_create, f"create-trace-{name}-{subject_id}")
        if trace is None:
            logger.error("Failed to create %s trace for %s", name, subject_id)
            return None

        if self._policy.detailed_logging:
            logger.info("Created %s trace %s for PRD %s", name, trace.id, subject_id)
        return trace

    async def create_prd_trace(
        self,
        prd_id: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[TraceHandle]:
        return await self.create_trace(
            PRD_TRACE_NAME, prd_id, user_id, session_id, metadata,
            trace_type="prd_generation",
        )

    async def create_critique_trace(
        self,
        prd_id: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[TraceHandle]:
        return await self.create_trace(
            CRITIQUE_TRACE_NAME, prd_id, user_id, session_id, metadata,
            trace_type="prd_critique",
        )

    async def create_question_trace(
        self,
        prd_id: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[TraceHandle]:
        return await self.create_trace(
            QUESTION_TRACE_NAME, prd_id, user_id, session_id, metadata,
            trace_type="prd_question",
        )

    # ------------------------------------------------------------------
    # Events and scores
    # ------------------------------------------------------------------

    async def track_event(
        self,
        name: str,
        properties: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> Optional[EventHandle]:
        backend = self._backend
        if backend is None:
            return None

        async def _create() -> EventHandle:
            return await backend.create_event(
                name=name,
                trace_id=trace_id,
                user_id=user_id,
                session_id=session_id,
                metadata=self._metadata(
                    "custom_event", properties, user_id=user_id, session_id=session_id
                ),
            )

        event = await self._retry(_create, f"track-event-{name}")
        if event is not None and self._policy.detailed_logging:
            logger.info("Tracked custom event: %s %s", name, properties or {})
        return event

    async def track_performance_metric(
        self,
        metric_name: str,
        value: float,
        unit: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[EventHandle]:
        properties = dict(metadata or {})
        properties.update({"metric_name": metric_name, "value": value, "unit": unit})
        return await self.track_event("performance_metric", properties)

    async def submit_score(
        self,
        trace_id: str,
        value: float,
        *,
        name: str = FEEDBACK_SCORE_NAME,
        comment: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Attach a score to ``trace_id``.

        Returns:
            The score id, or None when tracing is disabled or failed.
        """
        backend = self._backend
        if backend is None:
            return None

        async def _record() -> str:
            return await backend.record_score(
                trace_id=trace_id, name=name, value=value, comment=comment
            )

        score_id = await self._retry(_record, f"submit-feedback-{trace_id}")
        if score_id is not None and self._policy.detailed_logging:
            logger.info(
                "Feedback submitted successfully: trace=%s score=%s user=%s",
                trace_id,
                value,
                user_id,
            )
        return score_id

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    async def flush(self) -> bool:
        """
        Send buffered records.

        Returns:
            True only when every buffered record was accepted. Records the
            service rejected individually are not retried.
        """
        backend = self._backend
        if backend is None:
            return False

        async def _flush() -> int:
            return await backend.flush() or 0

        rejected = await self._retry(
            _flush, "flush-observability", max_retries=2, retry_delay_ms=500
        )
        if rejected is None:
            logger.error("Failed to flush observability records after retries")
            return False
        if rejected:
            logger.error("Tracing service rejected %d observability record(s)", rejected)
            return False
        return True

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval_seconds)
            await self.flush()

    async def start(self) -> None:
        """Start the background flush loop."""
        if self._backend is None or self._flush_task is not None:
            return
        self._flush_task = asyncio.create_task(self._flush_loop())

    async def stop(self) -> None:
        """Stop the flush loop, send what is buffered, and release the backend."""
        if self._flush_task is not None:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None

        if self._backend is None:
            return
        if await self.flush():
            logger.info("Observability records flushed on shutdown")
        await self._backend.aclose()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def _probe(self) -> bool:
        backend = self._backend
        if backend is None:
            return False

        async def _health_trace() -> bool:
            await backend.create_trace(
                name=HEALTH_TRACE_NAME,
                metadata={"type": "health_check", "timestamp": _utc_now_iso()},
            )
            await backend.flush()
            return True

        result = await self._retry(
            _health_trace, HEALTH_TRACE_NAME, max_retries=1, retry_delay_ms=500
        )
        return result is not None

    async def check_health(self) -> bool:
        return await self._health.check()

    async def health_status(self) -> Dict[str, Any]:
        """Snapshot for diagnostics endpoints."""
        healthy = await self.check_health() if self.enabled else False
        status = self._health.status.to_dict()
        status["healthy"] = healthy
        status["configuration"] = {
            "base_url": self._base_url,
            "has_public_key": self._has_public_key,
            "has_secret_key": self._has_secret_key,
        }
        return status

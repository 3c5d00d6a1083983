"""
Buffered client for the Langfuse public ingestion API.

Records are queued locally by ``create_trace``, ``create_event`` and
``record_score`` and sent in one batch by ``flush``:

    POST {base_url}/api/public/ingestion
    Authorization: Basic base64(public_key:secret_key)
    {"batch": [{"id": ..., "type": "trace-create", "timestamp": ..., "body": {...}}]}

Records are JSON-encoded when queued. Values JSON has no type for (datetime,
Decimal, sets) are sent as strings, and a record that still cannot be
encoded is refused at enqueue time, so the queue only ever holds sendable
records. A batch is put back at the head of the queue only when resending
can help (unreachable service, 429, 5xx). Other failures drop it with a log.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Protocol

import httpx

from pmcopilot.exceptions import ObservabilityError

logger = logging.getLogger(__name__)

INGESTION_PATH = "/api/public/ingestion"


@dataclass(frozen=True)
class TraceHandle:
    """Identifier of a trace created on the tracing service."""

    id: str
    name: str


@dataclass(frozen=True)
class EventHandle:
    """Identifier of an event and the trace it belongs to."""

    id: str
    name: str
    trace_id: str


class TracingBackend(Protocol):
    """What the emitter needs from a tracing SDK. Every call may raise."""

    async def create_trace(
        self,
        *,
        name: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TraceHandle: ...

    async def create_event(
        self,
        *,
        name: str,
        trace_id: Optional[str] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventHandle: ...

    async def record_score(
        self,
        *,
        trace_id: str,
        name: str,
        value: float,
        comment: Optional[str] = None,
    ) -> str: ...

    async def flush(self) -> int:
        """Send buffered records; return how many the service rejected."""
        ...

    async def aclose(self) -> None: ...


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _drop_none(body: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in body.items() if value is not None}


def _is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500


class _QueuedRecord(NamedTuple):
    id: str
    encoded: str


class IngestionClient:
    """
    Async HTTP client for Langfuse-compatible ingestion.

    Args:
        public_key: Basic-auth user.
        secret_key: Basic-auth password.
        base_url: Service root, e.g. ``https://cloud.langfuse.com``.
        timeout: Per-request timeout in seconds.
        max_queue_size: Oldest records are dropped beyond this size.
        http_client: Pre-built client (tests pass one with a MockTransport).
            A client passed in is not closed by ``aclose``.
    """

    def __init__(
        self,
        *,
        public_key: str,
        secret_key: str,
        base_url: str,
        timeout: float = 10.0,
        max_queue_size: int = 1000,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_queue_size = max_queue_size
        self._queue: List[_QueuedRecord] = []
        self._auth = httpx.BasicAuth(public_key, secret_key)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def _enqueue(self, event_type: str, body: Dict[str, Any]) -> None:
        record_id = _new_id()
        record = {
            "id": record_id,
            "type": event_type,
            "timestamp": _utc_now_iso(),
            "body": _drop_none(body),
        }
        try:
            encoded = json.dumps(record, default=str)
        except (TypeError, ValueError) as exc:
            raise ObservabilityError(
                f"Cannot encode {event_type} record: {exc}",
                details={"type": event_type},
            ) from exc
        self._queue.append(_QueuedRecord(record_id, encoded))
        self._trim_queue()

    def _trim_queue(self) -> None:
        overflow = len(self._queue) - self._max_queue_size
        if overflow > 0:
            del self._queue[:overflow]
            logger.warning("Ingestion queue full, dropped %d oldest record(s)", overflow)

    async def create_trace(
        self,
        *,
        name: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TraceHandle:
        trace_id = _new_id()
        self._enqueue(
            "trace-create",
            {
                "id": trace_id,
                "name": name,
                "userId": user_id,
                "sessionId": session_id,
                "metadata": metadata,
                "timestamp": _utc_now_iso(),
            },
        )
        return TraceHandle(id=trace_id, name=name)

    async def create_event(
        self,
        *,
        name: str,
        trace_id: Optional[str] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventHandle:
        if trace_id is None:
            # Standalone events get their own trace.
            trace = await self.create_trace(
                name=name, user_id=user_id, session_id=session_id, metadata=metadata
            )
            trace_id = trace.id
        event_id = _new_id()
        self._enqueue(
            "event-create",
            {
                "id": event_id,
                "traceId": trace_id,
                "name": name,
                "metadata": metadata,
                "startTime": _utc_now_iso(),
            },
        )
        return EventHandle(id=event_id, name=name, trace_id=trace_id)

    async def record_score(
        self,
        *,
        trace_id: str,
        name: str,
        value: float,
        comment: Optional[str] = None,
    ) -> str:
        score_id = _new_id()
        self._enqueue(
            "score-create",
            {
                "id": score_id,
                "traceId": trace_id,
                "name": name,
                "value": value,
                "comment": comment,
            },
        )
        return score_id

    async def flush(self) -> int:
        """
        Send every queued record in one batch.

        Records are put back at the head of the queue only when resending
        can help: the service was unreachable, or answered 429 or 5xx.

        Returns:
            Number of records the service rejected and that were dropped.

        Raises:
            httpx.TransportError: The service could not be reached.
            ObservabilityError: The service refused the whole batch.
        """
        if not self._queue:
            return 0

        batch, self._queue = self._queue, []
        content = '{"batch":[' + ",".join(item.encoded for item in batch) + "]}"
        try:
            response = await self._client.post(
                f"{self._base_url}{INGESTION_PATH}",
                content=content,
                headers={"Content-Type": "application/json"},
                auth=self._auth,
            )
        except httpx.TransportError:
            self._requeue(batch)
            raise

        status = response.status_code
        if status >= 400:
            if _is_retryable_status(status):
                self._requeue(batch)
            else:
                logger.error(
                    "Ingestion refused %d record(s) with HTTP %d; dropping them",
                    len(batch),
                    status,
                )
            raise ObservabilityError(
                f"Ingestion request failed with HTTP {status}: {response.text[:200]}",
                status_code=status,
            )

        rejected = 0
        if status == 207:
            rejected = self._handle_partial_failure(response, batch)

        logger.debug("Flushed %d ingestion record(s)", len(batch) - rejected)
        return rejected

    def _requeue(self, batch: List[_QueuedRecord]) -> None:
        self._queue = batch + self._queue
        self._trim_queue()

    def _handle_partial_failure(
        self, response: httpx.Response, batch: List[_QueuedRecord]
    ) -> int:
        try:
            payload = response.json()
        except ValueError:
            return 0
        errors = payload.get("errors") or []
        if not errors:
            return 0

        by_id = {item.id: item for item in batch}
        retry: List[_QueuedRecord] = []
        dropped = 0
        for error in errors:
            item = by_id.get(error.get("id"))
            status = error.get("status")
            if item is not None and isinstance(status, int) and _is_retryable_status(status):
                retry.append(item)
            else:
                dropped += 1
                logger.warning(
                    "Ingestion rejected record %s (status %s): %s",
                    error.get("id"),
                    status,
                    error.get("message", ""),
                )
        if retry:
            self._requeue(retry)
        return dropped

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

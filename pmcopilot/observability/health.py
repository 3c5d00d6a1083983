"""
Cached, coalesced health probing for the tracing service.

HealthCache answers "is the service reachable" without probing on every
call:
- Disabled service: False, no probe
- Fresh cached result: returned as-is
- Probe already running: callers share it
- Otherwise: one new probe
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

ProbeFunc = Callable[[], Awaitable[bool]]


@dataclass
class HealthStatus:
    """Result of the most recent real probe."""

    enabled: bool = False
    healthy: bool = False
    last_checked_utc: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "healthy": self.healthy,
            "last_checked_utc": (
                self.last_checked_utc.isoformat() if self.last_checked_utc else None
            ),
        }


class HealthCache:
    """
    Memoizes a connectivity probe for ``interval_ms`` milliseconds.

    At most one probe is in flight: the pending task is published before
    the probe starts and cleared once it resolves, so interleaved callers
    await the same result.

    Usage:
        cache = HealthCache(probe, enabled=True, interval_ms=30000)
        healthy = await cache.check()
    """

    def __init__(
        self,
        probe: ProbeFunc,
        *,
        enabled: bool,
        interval_ms: int = 30000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._probe = probe
        self._interval_ms = interval_ms
        self._clock = clock
        self._checked_at: Optional[float] = None
        self._pending: Optional["asyncio.Task[bool]"] = None
        self.status = HealthStatus(enabled=enabled)

    @property
    def probe_in_flight(self) -> bool:
        return self._pending is not None

    def _is_fresh(self) -> bool:
        if self._checked_at is None:
            return False
        age_ms = (self._clock() - self._checked_at) * 1000.0
        return age_ms < self._interval_ms

    async def check(self) -> bool:
        if not self.status.enabled:
            return False

        if self._is_fresh():
            return self.status.healthy

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._run_probe())

        # Shielded so one cancelled caller does not cancel the shared probe.
        return await asyncio.shield(self._pending)

    async def _run_probe(self) -> bool:
        try:
            healthy = bool(await self._probe())
        except Exception:
            logger.exception("Health probe raised unexpectedly")
            healthy = False
        finally:
            self._pending = None

        self.status.healthy = healthy
        self.status.last_checked_utc = datetime.now(timezone.utc)
        self._checked_at = self._clock()
        logger.debug("Health probe finished: healthy=%s", healthy)
        return healthy

    def invalidate(self) -> None:
        """Force the next check() to probe again."""
        self._checked_at = None

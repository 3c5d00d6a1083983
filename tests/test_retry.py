from __future__ import annotations

import logging

import httpx
import pytest

import pmcopilot.observability.retry as retry_module
from pmcopilot.exceptions import ConfigError
from pmcopilot.observability import (
    ErrorKind,
    RetryPolicy,
    current_retry_stats,
    track_tracing_retries,
    with_retry,
)
from tests.providers.fake_backend import RecordingSleep


class _Flaky:
    """Fails ``failures`` times with ``error`` and then returns ``result``."""

    def __init__(self, error: Exception, failures: int, result: str = "ok") -> None:
        self.error = error
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


@pytest.mark.asyncio
async def test_first_attempt_success_does_not_sleep() -> None:
    sleep = RecordingSleep()
    op = _Flaky(RuntimeError("connection"), failures=0)

    with track_tracing_retries() as stats:
        assert await with_retry(op, "ctx", sleep=sleep) == "ok"

    assert op.calls == 1
    assert sleep.delays == []
    assert stats.retries == 0
    assert stats.degraded is False


@pytest.mark.asyncio
async def test_fails_once_then_succeeds() -> None:
    sleep = RecordingSleep()
    op = _Flaky(RuntimeError("network down"), failures=1)

    assert await with_retry(op, "ctx", max_retries=2, sleep=sleep) == "ok"
    assert op.calls == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [1, 2, 3, 5])
async def test_always_failing_operation_runs_exactly_n_times(max_retries: int) -> None:
    sleep = RecordingSleep()
    op = _Flaky(RuntimeError("connection refused"), failures=100)

    assert await with_retry(op, "ctx", max_retries=max_retries, sleep=sleep) is None
    assert op.calls == max_retries
    assert len(sleep.delays) == max_retries - 1


@pytest.mark.asyncio
async def test_backoff_doubles_from_base_delay() -> None:
    sleep = RecordingSleep()
    op = _Flaky(RuntimeError("rate limit"), failures=100)

    await with_retry(op, "ctx", max_retries=4, retry_delay_ms=1000, sleep=sleep)

    # 1000ms, 2000ms, 4000ms
    assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [1, 3, 10])
async def test_authentication_error_is_not_retried(max_retries: int) -> None:
    sleep = RecordingSleep()
    op = _Flaky(RuntimeError("401 Unauthorized"), failures=100)

    assert await with_retry(op, "ctx", max_retries=max_retries, sleep=sleep) is None
    assert op.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_credential_message_on_transport_error_is_not_retried() -> None:
    sleep = RecordingSleep()
    request = httpx.Request("POST", "https://langfuse.test/api/public/ingestion")
    op = _Flaky(httpx.ConnectError("Unauthorized", request=request), failures=100)

    assert await with_retry(op, "ctx", max_retries=3, sleep=sleep) is None
    assert op.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_final_failure_is_logged_with_context(caplog: pytest.LogCaptureFixture) -> None:
    op = _Flaky(RuntimeError("socket exploded"), failures=100)

    with caplog.at_level(logging.ERROR, logger=retry_module.__name__):
        await with_retry(op, "flush-observability", max_retries=2, sleep=RecordingSleep())

    assert "flush-observability" in caplog.text
    assert "socket exploded" in caplog.text


@pytest.mark.asyncio
async def test_detailed_logging_reports_every_attempt(caplog: pytest.LogCaptureFixture) -> None:
    op = _Flaky(RuntimeError("network"), failures=100)
    policy = RetryPolicy(max_retries=3, retry_delay_ms=10, detailed_logging=True)

    with caplog.at_level(logging.WARNING, logger=retry_module.__name__):
        await with_retry(op, "ctx", policy, sleep=RecordingSleep())

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 3
    assert "attempt 1/3" in warnings[0].getMessage()


@pytest.mark.asyncio
async def test_overrides_merge_into_policy() -> None:
    sleep = RecordingSleep()
    op = _Flaky(RuntimeError("network"), failures=100)
    policy = RetryPolicy(max_retries=5, retry_delay_ms=200)

    await with_retry(op, "ctx", policy, max_retries=2, sleep=sleep)

    assert op.calls == 2
    assert sleep.delays == [0.2]


@pytest.mark.asyncio
async def test_retries_are_recorded_on_active_stats() -> None:
    sleep = RecordingSleep()
    op = _Flaky(RuntimeError("too many requests"), failures=2)

    with track_tracing_retries() as stats:
        assert await with_retry(op, "ctx", sleep=sleep) == "ok"

    assert stats.retries == 2
    assert stats.retries_by_kind == {ErrorKind.RATE_LIMIT: 2}
    assert stats.backoff_seconds == 3.0
    assert stats.failed_operations == []
    assert stats.summary()["tracing_retries_by_kind"] == {"rate_limit_error": 2}


@pytest.mark.asyncio
async def test_give_up_is_recorded_with_context() -> None:
    with track_tracing_retries() as stats:
        await with_retry(
            _Flaky(RuntimeError("network down"), failures=100),
            "create-trace-prd-generation",
            max_retries=2,
            sleep=RecordingSleep(),
        )
        await with_retry(
            _Flaky(RuntimeError("Unauthorized"), failures=100), "flush", sleep=RecordingSleep()
        )

    assert stats.degraded is True
    assert stats.failed_operations == ["create-trace-prd-generation", "flush"]
    assert stats.retries == 1


@pytest.mark.asyncio
async def test_stats_are_scoped_to_the_block() -> None:
    with track_tracing_retries() as outer:
        with track_tracing_retries() as inner:
            await with_retry(
                _Flaky(RuntimeError("network"), failures=1), "ctx", sleep=RecordingSleep()
            )
        assert current_retry_stats() is outer

    assert inner.retries == 1
    assert outer.retries == 0
    assert current_retry_stats() is None


def test_policy_rejects_invalid_values() -> None:
    with pytest.raises(ConfigError):
        RetryPolicy(max_retries=0)
    with pytest.raises(ConfigError):
        RetryPolicy(retry_delay_ms=-1)


def test_policy_merge_ignores_none() -> None:
    policy = RetryPolicy(max_retries=4, retry_delay_ms=250)

    assert policy.merge(max_retries=None) is policy
    assert policy.merge(retry_delay_ms=10) == RetryPolicy(max_retries=4, retry_delay_ms=10)
    assert policy.backoff_seconds(3) == 1.0

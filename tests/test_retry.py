from __future__ import annotations

import asyncio
from typing import List

import pytest

from learnsync.retry import RetryPolicy, retry

from conftest import make_settings


class _Flaky:
    def __init__(self, failures: int, result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls} failed")
        return self.result


def _recording_sleep(delays: List[float]):
    async def _sleep(delay: float) -> None:
        delays.append(delay)

    return _sleep


@pytest.mark.asyncio
async def test_succeeds_after_two_failures_with_backoff_delays() -> None:
    delays: List[float] = []
    operation = _Flaky(failures=2)

    result = await retry(operation, 3, 0.5, 2.0, sleep=_recording_sleep(delays))

    assert result == "ok"
    assert operation.calls == 3
    assert delays == [0.5, 1.0]
    assert sum(delays) == pytest.approx(0.5 + 0.5 * 2.0)


@pytest.mark.asyncio
async def test_real_sleep_elapsed_time_matches_schedule() -> None:
    loop = asyncio.get_running_loop()
    operation = _Flaky(failures=2)

    started = loop.time()
    result = await retry(operation, 3, 0.05, 2.0)
    elapsed = loop.time() - started

    assert result == "ok"
    assert elapsed >= 0.05 + 0.1 - 0.01
    assert elapsed < 0.5


@pytest.mark.asyncio
async def test_final_failure_reraises_last_error() -> None:
    delays: List[float] = []
    operation = _Flaky(failures=5)

    with pytest.raises(ConnectionError, match="attempt 3 failed"):
        await retry(operation, 3, 0.1, 3.0, sleep=_recording_sleep(delays))

    assert operation.calls == 3
    assert delays == pytest.approx([0.1, 0.3])


@pytest.mark.asyncio
async def test_single_attempt_never_sleeps() -> None:
    delays: List[float] = []

    with pytest.raises(ConnectionError):
        await retry(_Flaky(failures=1), 1, 1.0, 2.0, sleep=_recording_sleep(delays))

    assert delays == []


@pytest.mark.asyncio
async def test_zero_attempts_is_rejected() -> None:
    with pytest.raises(ValueError):
        await retry(_Flaky(failures=0), 0)


@pytest.mark.asyncio
async def test_cancellation_is_not_retried() -> None:
    calls = 0

    async def _cancelled() -> None:
        nonlocal calls
        calls += 1
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await retry(_cancelled, 3, 0.0)

    assert calls == 1


@pytest.mark.asyncio
async def test_policy_from_settings_uses_configured_parameters() -> None:
    policy = RetryPolicy.from_settings(
        make_settings(retry_max_attempts=4, retry_initial_delay=0.2, retry_backoff_factor=1.5)
    )
    delays: List[float] = []

    result = await policy.run(_Flaky(failures=3, result="done"), sleep=_recording_sleep(delays))

    assert result == "done"
    assert delays == pytest.approx([0.2, 0.3, 0.45])

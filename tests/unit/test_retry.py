from __future__ import annotations

import logging

import pytest

from replication.errors import DeliveryError
from replication.retry import RetryingExecutor


class _Flaky:
    """Fails `failures` times (or forever when negative), then returns 201."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> int:
        self.calls += 1
        if self.failures < 0 or self.calls <= self.failures:
            raise DeliveryError("Patient", "pat-1", f"HTTP 503 (call {self.calls})", status_code=503)
        return 201


@pytest.fixture
def slept(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    waits: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        waits.append(seconds)

    monkeypatch.setattr("replication.retry.asyncio.sleep", fake_sleep)
    return waits


@pytest.mark.asyncio
@pytest.mark.parametrize("failures", [0, 1, 2])
async def test_succeeds_after_k_failures_with_k_plus_one_attempts(failures: int, slept: list[float]) -> None:
    op = _Flaky(failures)

    result, attempts = await RetryingExecutor(max_attempts=3, base_delay=0.5).execute(op)

    assert result == 201
    assert attempts == failures + 1
    assert slept == [0.5 * k for k in range(1, failures + 1)]


@pytest.mark.asyncio
async def test_always_failing_operation_stops_after_n_attempts_with_linear_waits(slept: list[float]) -> None:
    op = _Flaky(-1)

    with pytest.raises(DeliveryError) as excinfo:
        await RetryingExecutor(max_attempts=4, base_delay=0.5).execute(op, description="PUT Patient/pat-1")

    assert op.calls == 4
    assert slept == [0.5, 1.0, 1.5]
    assert "call 4" in str(excinfo.value)


@pytest.mark.asyncio
async def test_every_failed_attempt_is_logged_as_warning(slept: list[float], caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="replication.retry")

    with pytest.raises(DeliveryError):
        await RetryingExecutor(max_attempts=3, base_delay=0.1).execute(_Flaky(-1), description="PUT Patient/pat-1")

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert [m.split(" for ")[0] for m in warnings] == ["Attempt 1/3", "Attempt 2/3", "Attempt 3/3"]
    assert any(r.levelno == logging.ERROR and "Giving up on PUT Patient/pat-1" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize(("max_attempts", "base_delay"), [(0, 0.5), (3, -1.0)])
def test_rejects_invalid_policy(max_attempts: int, base_delay: float) -> None:
    with pytest.raises(ValueError):
        RetryingExecutor(max_attempts=max_attempts, base_delay=base_delay)

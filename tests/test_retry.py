import httpx
import pytest

from bunkr_transfer.retry import RetryPolicy, request_with_retry
from bunkr_transfer.types import TransportError


class Recorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_always_failing_operation_makes_six_attempts():
    sleep = Recorder()
    attempts = 0

    async def op():
        nonlocal attempts
        attempts += 1
        raise httpx.ConnectError(f"refused #{attempts}")

    with pytest.raises(TransportError, match="refused #6"):
        await request_with_retry(op, RetryPolicy(), sleep=sleep)

    assert attempts == 6
    assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]


@pytest.mark.asyncio
async def test_single_failure_then_success_retries_once():
    sleep = Recorder()
    retries: list[int] = []
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ReadTimeout("slow")
        return "ok"

    result = await request_with_retry(
        op,
        sleep=sleep,
        on_retry=lambda attempt, wait, exc: retries.append(attempt),
    )

    assert result == "ok"
    assert retries == [1]
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_error_status_is_returned_without_retry():
    sleep = Recorder()
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    response = await request_with_retry(op, sleep=sleep)

    assert response.status_code == 503
    assert calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_non_transport_errors_propagate_immediately():
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await request_with_retry(op, sleep=Recorder())
    assert calls == 1


@pytest.mark.asyncio
async def test_custom_policy_budget():
    sleep = Recorder()
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        raise TransportError("down")

    with pytest.raises(TransportError):
        await request_with_retry(op, RetryPolicy(retries=2, base_delay=0.5, multiplier=3.0), sleep=sleep)
    assert calls == 3
    assert sleep.delays == [0.5, 1.5]

# tests/test_retry.py
import asyncio

import pytest

from utils.retry import call_with_retries


class Flaky:
    def __init__(self, failures, exc=ConnectionError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"boom {self.calls}")
        return "ok"


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures():
    op = Flaky(2)
    assert await call_with_retries(op, attempts=3, delay_s=0) == "ok"
    assert op.calls == 3


@pytest.mark.asyncio
async def test_gives_up_after_attempts_and_raises_last_error():
    op = Flaky(5)
    with pytest.raises(ConnectionError, match="boom 3"):
        await call_with_retries(op, attempts=3, delay_s=0)
    assert op.calls == 3


@pytest.mark.asyncio
async def test_errors_outside_retry_on_propagate_immediately():
    op = Flaky(5, exc=KeyError)
    with pytest.raises(KeyError):
        await call_with_retries(op, attempts=3, delay_s=0, retry_on=(ConnectionError,))
    assert op.calls == 1


@pytest.mark.asyncio
async def test_cancellation_is_not_retried():
    calls = {"n": 0}

    async def op():
        calls["n"] += 1
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await call_with_retries(op, attempts=3, delay_s=0, retry_on=(BaseException,))
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_sleeps_between_attempts(monkeypatch):
    slept = []

    async def fake_sleep(s):
        slept.append(s)

    monkeypatch.setattr("utils.retry.asyncio.sleep", fake_sleep)
    await call_with_retries(Flaky(2), attempts=3, delay_s=5.0)
    assert slept == [5.0, 5.0]


@pytest.mark.asyncio
async def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        await call_with_retries(Flaky(0), attempts=0)

import asyncio

import pytest

from worker.polling import RetryPolicy, poll, retry


def test_poll_returns_true_once_predicate_holds(clock):
    calls = []

    async def ready():
        calls.append(clock.now())
        return len(calls) == 3

    assert asyncio.run(poll(ready, 0.5, 10, sleep=clock.sleep)) is True
    assert clock.sleeps == [0.5, 0.5]


def test_poll_gives_up_at_deadline(clock):
    async def never():
        return False

    assert asyncio.run(poll(never, 0.5, 2, sleep=clock.sleep)) is False
    assert sum(clock.sleeps) == pytest.approx(2.0)


def test_poll_treats_exceptions_as_not_ready(clock):
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 2:
            raise ConnectionError("refused")
        return True

    assert asyncio.run(poll(flaky, 0.25, 5, sleep=clock.sleep)) is True


def test_poll_accepts_explicit_clock():
    ticks = iter([0.0, 0.0, 5.0])
    slept = []

    async def sleep(seconds):
        slept.append(seconds)

    async def never():
        return False

    assert asyncio.run(poll(never, 1, 3, sleep=sleep, clock=lambda: next(ticks))) is False
    assert slept == [1]


def test_retry_succeeds_after_failures():
    slept = []
    errors = []

    async def sleep(seconds):
        slept.append(seconds)

    async def op(attempt):
        if attempt < 3:
            raise RuntimeError(f"boom {attempt}")
        return "done"

    result = asyncio.run(
        retry(op, RetryPolicy(max_attempts=3, delay=0.8), on_error=lambda a, e: errors.append(a), sleep=sleep)
    )

    assert result == "done"
    assert errors == [1, 2]
    assert slept == [0.8, 0.8]


def test_retry_reraises_last_error():
    async def sleep(_seconds):
        return None

    async def op(attempt):
        raise ValueError(f"attempt {attempt}")

    errors = []
    with pytest.raises(ValueError, match="attempt 2"):
        asyncio.run(
            retry(op, RetryPolicy(max_attempts=2, delay=1), on_error=lambda a, e: errors.append((a, str(e))), sleep=sleep)
        )

    assert errors == [(1, "attempt 1"), (2, "attempt 2")]

"""
Deadline-bounded polling and fixed-delay retry.

`sleep` (and the clock, for `poll`) are injectable so tests never wait.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_fixed

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def poll(
    predicate: Callable[[], Awaitable[bool]],
    interval: float,
    deadline: float,
    *,
    sleep: Sleep = asyncio.sleep,
    clock: Optional[Callable[[], float]] = None,
) -> bool:
    """
    Await `predicate` every `interval` seconds until it returns True or
    `deadline` seconds have passed since the first call. Exceptions raised by
    the predicate count as False.
    """
    now = clock or time.monotonic
    start = now()
    while now() - start < deadline:
        try:
            if await predicate():
                return True
        except Exception:
            pass
        await sleep(interval)
    return False


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay: float = 1.5


async def retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_error: Optional[Callable[[int, BaseException], None]] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run `operation(attempt)` until it succeeds or the policy is exhausted.
    `on_error` sees every failed attempt; the last exception is re-raised.
    """

    def _after(state: RetryCallState) -> None:
        if on_error is not None:
            on_error(state.attempt_number, state.outcome.exception())

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_fixed(policy.delay),
        sleep=sleep,
        after=_after,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await operation(attempt.retry_state.attempt_number)
    return result

"""
Bounded retry with a per-attempt timeout for external I/O.

Price and rate sources are wrapped with ``call_with_retry`` so a slow or
flaky upstream is retried a fixed number of times, each attempt capped by
``asyncio.wait_for``. When every attempt fails the last exception is raised
and the caller treats the source as failed.

Usage::

    rate = await call_with_retry(
        lambda: source.fetch_pair("USD", "EUR"),
        timeout_s=10.0,
        max_attempts=3,
    )
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    timeout_s: float,
    max_attempts: int,
    wait_s: float = 0.5,
) -> T:
    """Await ``func()`` with a per-attempt timeout and bounded retries.

    Args:
        func: Zero-argument coroutine factory, called once per attempt.
        timeout_s: Seconds allowed per attempt before ``TimeoutError``.
        max_attempts: Total attempts including the first.
        wait_s: Base of the exponential back-off; ``0`` disables waiting.

    Returns:
        The first successful result.

    Raises:
        Exception: The last attempt's exception once attempts are exhausted.
    """
    wait = wait_exponential(multiplier=wait_s, max=wait_s * 8) if wait_s > 0 else wait_none()
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait,
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await asyncio.wait_for(func(), timeout=timeout_s)
    return result

# utils/retry.py
"""Bounded retry with a fixed delay between attempts."""

import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from utils.logger import logger

T = TypeVar("T")


async def call_with_retries(
    op: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    delay_s: float = 5.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "",
) -> T:
    """Run ``op`` up to ``attempts`` times, sleeping ``delay_s`` between tries.

    ``op`` is a no-arg coroutine function so each attempt issues a fresh call.
    The last error is re-raised once attempts are exhausted. Cancellation is
    never retried.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return await op()
        except asyncio.CancelledError:
            raise
        except retry_on as e:
            if attempt >= attempts:
                raise
            logger.warning(f"{label or 'call'} failed ({attempt}/{attempts}): {e}; retrying in {delay_s}s")
            await asyncio.sleep(delay_s)

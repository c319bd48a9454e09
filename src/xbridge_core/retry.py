"""
Retry utilities for transient chain failures.

A stale "recent blockhash" cannot be retried verbatim: the transaction must be
rebuilt with a fresh one. ``with_blockhash_retry`` therefore takes a
build-and-send callable that is invoked from scratch on every attempt.

Usage:
    from xbridge_core.retry import with_blockhash_retry

    async def build_and_send():
        blockhash = await client.get_latest_blockhash()
        ...
        return await client.send_raw_transaction(raw)

    signature = await with_blockhash_retry(build_and_send)
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .constants import RetryDefaults

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BLOCKHASH_MARKERS = ("blockhash", "block height exceeded")


def is_blockhash_error(exc: BaseException) -> bool:
    """Return True when the error means the transaction's blockhash went stale."""
    message = str(exc).lower()
    return any(marker in message for marker in _BLOCKHASH_MARKERS)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total number of calls, including the first one
        delay: Fixed delay between attempts in seconds
        retry_condition: Decides whether an exception is transient
        on_retry: Optional callback called before each retry
    """

    max_attempts: int = RetryDefaults.BLOCKHASH_MAX_ATTEMPTS
    delay: float = RetryDefaults.BLOCKHASH_DELAY
    retry_condition: Callable[[BaseException], bool] = is_blockhash_error
    on_retry: Optional[Callable[[int, BaseException], None]] = None

    def should_retry(self, exception: BaseException) -> bool:
        return self.retry_condition(exception)


BLOCKHASH_RETRY_CONFIG = RetryConfig()


async def retry_async(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Execute an async callable with retry logic.

    The callable is invoked at most ``config.max_attempts`` times. Errors the
    config does not classify as transient are raised immediately. When attempts
    run out, the last error is re-raised as-is so callers can match on it.
    """
    if config is None:
        config = RetryConfig()
    if config.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func()
        except Exception as e:
            if attempt >= config.max_attempts or not config.should_retry(e):
                raise

            logger.warning(
                "Retry %d/%d after %s: %s. Waiting %.2fs",
                attempt,
                config.max_attempts - 1,
                type(e).__name__,
                e,
                config.delay,
            )
            if config.on_retry:
                config.on_retry(attempt, e)
            await sleep(config.delay)

    raise AssertionError("unreachable")


async def with_blockhash_retry(
    build_and_send: Callable[[], Awaitable[T]],
    max_attempts: int = RetryDefaults.BLOCKHASH_MAX_ATTEMPTS,
    delay: float = RetryDefaults.BLOCKHASH_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Retry a build+send closure while the chain reports a stale blockhash."""
    config = RetryConfig(max_attempts=max_attempts, delay=delay)
    return await retry_async(build_and_send, config=config, sleep=sleep)

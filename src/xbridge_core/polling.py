"""Bounded, cancellable polling."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeoutError(Exception):
    """The polled condition never became ready within the allowed number of polls."""

    def __init__(self, polls: int) -> None:
        super().__init__(f"Condition not met after {polls} polls")
        self.polls = polls


class PollCancelledError(Exception):
    """Polling was cancelled out-of-band before the condition became ready."""

    def __init__(self, polls: int) -> None:
        super().__init__(f"Polling cancelled after {polls} polls")
        self.polls = polls


async def poll_until(
    fn: Callable[[], Awaitable[Optional[T]]],
    max_polls: int,
    interval: float,
    cancel: Optional[asyncio.Event] = None,
) -> T:
    """Call ``fn`` until it returns a non-None value.

    ``fn`` is called at most ``max_polls`` times with ``interval`` seconds
    between calls and no wait after the last one. Setting ``cancel`` interrupts
    the wait immediately.

    Raises:
        PollTimeoutError: ``fn`` returned None on every poll
        PollCancelledError: ``cancel`` was set
    """
    if max_polls < 1:
        raise ValueError("max_polls must be at least 1")
    cancel = cancel or asyncio.Event()

    for poll in range(1, max_polls + 1):
        if cancel.is_set():
            raise PollCancelledError(poll - 1)

        result = await fn()
        if result is not None:
            return result

        if poll == max_polls:
            break

        try:
            await asyncio.wait_for(cancel.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue
        raise PollCancelledError(poll)

    logger.debug("Polling exhausted after %d polls", max_polls)
    raise PollTimeoutError(max_polls)

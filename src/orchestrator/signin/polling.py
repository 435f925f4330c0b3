"""Bounded, cancellable polling for sign-in completion.

The connector reports sign-in completion only when asked, so callers poll.
Each attempt's errors are logged and retried; waiting stops with
PollTimeoutError once ``max_wait`` seconds have passed. Cancelling the
awaiting task stops polling immediately.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeoutError(Exception):
    """Completion was not observed before the deadline.

    Attributes:
        waited_seconds: Time spent polling.
        attempts: Number of checks made.
    """

    def __init__(self, waited_seconds: float, attempts: int) -> None:
        self.waited_seconds = waited_seconds
        self.attempts = attempts
        super().__init__(
            f"Sign-in not completed after {waited_seconds:.0f}s ({attempts} checks)"
        )


async def poll_until_complete(
    check: Callable[[], Awaitable[Optional[T]]],
    interval: float = 1.0,
    backoff: float = 1.5,
    max_interval: float = 10.0,
    max_wait: float = 600.0,
    initial_delay: float = 0.0,
    on_pending: Callable[[int], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call ``check`` until it returns a non-None result.

    Args:
        check: Coroutine function returning None while pending.
        interval: Delay after the first pending check.
        backoff: Multiplier applied to the delay after each pending check.
        max_interval: Upper bound on the delay.
        max_wait: Total seconds before giving up.
        initial_delay: Wait before the first check.
        on_pending: Called with the attempt number after each pending check.
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock, injectable for tests.

    Returns:
        The first non-None result of ``check``.

    Raises:
        PollTimeoutError: If ``max_wait`` elapses first.
    """
    started = clock()
    if initial_delay > 0:
        await sleep(initial_delay)

    delay = interval
    attempts = 0
    while True:
        attempts += 1
        try:
            result = await check()
        except Exception as e:
            logger.warning("Sign-in poll attempt %d failed: %s", attempts, e)
            result = None

        if result is not None:
            logger.debug("Sign-in poll completed after %d attempts", attempts)
            return result

        if on_pending is not None:
            on_pending(attempts)

        elapsed = clock() - started
        if elapsed >= max_wait:
            raise PollTimeoutError(elapsed, attempts)

        await sleep(min(delay, max_wait - elapsed))
        delay = min(delay * backoff, max_interval)

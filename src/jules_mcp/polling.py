"""
Bounded polling.

Repeatedly fetches a value until a condition holds or a wall-clock deadline
passes. There is no push channel on the Jules API, so every "wait for X"
operation is built on top of this loop.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL_MS = 5000
DEFAULT_MAX_DURATION_MS = 600_000


class PollReason(str, Enum):
    """Why a poll loop stopped."""

    CONDITION_MET = "condition_met"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class PollResult(Generic[T]):
    """Outcome of a poll loop."""

    success: bool
    value: Optional[T]
    attempts: int
    elapsed_ms: int
    reason: PollReason
    error: Optional[str] = None

    def stats(self) -> dict[str, int]:
        return {"attempts": self.attempts, "elapsedMs": self.elapsed_ms}


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def poll(
    fetch: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    interval_ms: Optional[int] = None,
    max_duration_ms: Optional[int] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> PollResult[T]:
    """
    Poll ``fetch`` until ``is_done`` accepts its result or time runs out.

    The deadline is checked before every fetch. A failing fetch ends the loop
    immediately with ``reason=error``; retrying the fetch itself is left to
    the caller. Sleeps between attempts are clamped to the remaining budget.

    Args:
        fetch: Coroutine function producing the current value
        is_done: Predicate deciding whether the value is final
        interval_ms: Delay between attempts (default 5000)
        max_duration_ms: Wall-clock budget (default 600000)
        on_progress: Called with (attempt, elapsed_ms) after each fetch

    Returns:
        PollResult carrying the last fetched value
    """
    if interval_ms is None:
        interval_ms = DEFAULT_INTERVAL_MS
    if max_duration_ms is None:
        max_duration_ms = DEFAULT_MAX_DURATION_MS

    started = time.monotonic()
    attempts = 0
    last_value: Optional[T] = None

    while True:
        elapsed = _elapsed_ms(started)
        if elapsed >= max_duration_ms:
            logger.debug(f"Poll timed out after {elapsed}ms ({attempts} attempts)")
            return PollResult(
                success=False,
                value=last_value,
                attempts=attempts,
                elapsed_ms=elapsed,
                reason=PollReason.TIMEOUT,
            )

        attempts += 1
        try:
            last_value = await fetch()
        except Exception as e:
            logger.warning(f"Poll fetch failed on attempt {attempts}: {e}")
            return PollResult(
                success=False,
                value=last_value,
                attempts=attempts,
                elapsed_ms=_elapsed_ms(started),
                reason=PollReason.ERROR,
                error=str(e) or type(e).__name__,
            )

        if on_progress is not None:
            on_progress(attempts, elapsed)

        if is_done(last_value):
            return PollResult(
                success=True,
                value=last_value,
                attempts=attempts,
                elapsed_ms=_elapsed_ms(started),
                reason=PollReason.CONDITION_MET,
            )

        remaining_ms = max_duration_ms - _elapsed_ms(started)
        delay_ms = max(0, min(interval_ms, remaining_ms))
        logger.debug(f"Poll attempt {attempts} not done, sleeping {delay_ms}ms")
        await asyncio.sleep(delay_ms / 1000)

"""Async timing helpers: search debouncing and periodic background loops."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class Debouncer:
    """
    Runs only the last of a burst of calls, `delay` seconds after it was made.

    Each `schedule()` cancels the pending call (if it has not started yet) and
    returns the task of the new one, so callers may await the result.
    """

    def __init__(self, delay: float, *, sleep: Sleep = asyncio.sleep) -> None:
        self.delay = delay
        self._sleep = sleep
        self._pending: asyncio.Task | None = None

    async def _run_later(self, fn: Callable[..., Awaitable[Any]], args: tuple) -> Any:
        await self._sleep(self.delay)
        return await fn(*args)

    def schedule(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
        self.cancel()
        self._pending = asyncio.ensure_future(self._run_later(fn, args))
        return self._pending

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None


async def run_periodically(
    fn: Callable[[], Awaitable[Any]],
    interval_s: float,
    *,
    stop: asyncio.Event,
    name: str = "periodic",
    sleep: Sleep = asyncio.sleep,
) -> int:
    """
    Call `fn` every `interval_s` seconds until `stop` is set.

    Failures are logged and retried on the next tick. Returns the number of ticks run.
    """
    ticks = 0
    while not stop.is_set():
        ticks += 1
        try:
            await fn()
        except Exception as e:
            logger.warning("%s tick %d failed: %s", name, ticks, e)
        if stop.is_set():
            break
        await sleep(interval_s)
    return ticks

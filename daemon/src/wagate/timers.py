"""One-shot timers used for reconnect scheduling.

The scheduler only depends on TimerFactory, so tests can swap in a timer
that fires on demand instead of waiting on the event loop clock.
"""

import asyncio
from typing import Any, Awaitable, Callable, Protocol

TimerCallback = Callable[[], Awaitable[None]]


class Timer(Protocol):
    """A pending one-shot timer."""

    def cancel(self) -> None:
        """Cancel the timer. No-op if it already fired."""
        ...


TimerFactory = Callable[[float, TimerCallback], Timer]


class AsyncioTimer:
    """Timer backed by an asyncio task that sleeps then awaits the callback."""

    def __init__(self, delay: float, callback: TimerCallback):
        self.delay = delay
        self._callback = callback
        self._fired = False
        self._task: asyncio.Task[Any] = asyncio.create_task(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        self._fired = True
        await self._callback()

    def cancel(self) -> None:
        # Only the sleep is cancellable; a fired timer is running a reconnect.
        if not self._fired:
            self._task.cancel()

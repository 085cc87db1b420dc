"""Single-flight reconnect scheduling with geometric backoff.

Usage:
    scheduler = ReconnectScheduler(reconnect=manager.reconnect)

    # After a non-terminal close
    scheduler.schedule(5.0)

    # After the session opens, or on shutdown
    scheduler.cancel()

When the timer fires, the pending marker is cleared and the reconnect
callback runs. If it raises, the next attempt is scheduled with
min(delay * multiplier, max_delay). A later fresh schedule() starts again
from whatever base delay its caller passes.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from wagate.timers import AsyncioTimer, Timer, TimerFactory

logger = logging.getLogger(__name__)

ReconnectCallback = Callable[[], Awaitable[Any]]

DEFAULT_MAX_DELAY = 60.0
DEFAULT_MULTIPLIER = 1.5


class ReconnectScheduler:
    """Owns the one reconnect timer that may be pending at a time."""

    def __init__(
        self,
        reconnect: ReconnectCallback,
        timer_factory: Optional[TimerFactory] = None,
        max_delay: float = DEFAULT_MAX_DELAY,
        multiplier: float = DEFAULT_MULTIPLIER,
    ):
        """Initialize scheduler.

        Args:
            reconnect: Async callable performing one reconnect attempt.
                       Raising marks the attempt as failed.
            timer_factory: Creates timers; defaults to AsyncioTimer.
            max_delay: Backoff cap in seconds.
            multiplier: Backoff growth factor applied after each failure.
        """
        self._reconnect = reconnect
        self._timer_factory: TimerFactory = timer_factory or AsyncioTimer
        self._max_delay = max_delay
        self._multiplier = multiplier

        self._timer: Optional[Timer] = None
        self._pending_delay: Optional[float] = None
        # Bumped by cancel() so a reconnect already in flight does not
        # start a new backoff chain when it fails.
        self._generation = 0

    @property
    def pending(self) -> bool:
        """Whether a reconnect timer is armed."""
        return self._timer is not None

    @property
    def pending_delay(self) -> Optional[float]:
        """Delay of the armed timer, if any."""
        return self._pending_delay

    def schedule(self, base_delay: float) -> bool:
        """Arm the reconnect timer unless one is already pending.

        Args:
            base_delay: Delay in seconds before the attempt.

        Returns:
            True if a timer was armed, False if one was already pending.
        """
        if self._timer is not None:
            logger.info("Reconnect already scheduled, ignoring")
            return False

        delay = min(base_delay, self._max_delay)
        logger.info(f"Scheduling reconnect in {delay:.1f}s")

        self._pending_delay = delay
        self._timer = self._timer_factory(delay, self._fire)
        return True

    def cancel(self) -> None:
        """Cancel the pending timer, if any."""
        self._generation += 1
        if self._timer is None:
            return

        self._timer.cancel()
        self._timer = None
        self._pending_delay = None
        logger.debug("Pending reconnect cancelled")

    async def _fire(self) -> None:
        """Timer callback: clear the marker, attempt, back off on failure."""
        delay = self._pending_delay or 0.0
        generation = self._generation
        self._timer = None
        self._pending_delay = None

        logger.info("Reconnecting...")
        try:
            await self._reconnect()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Reconnect attempt failed: {e}")
            if generation != self._generation:
                return
            self.schedule(min(delay * self._multiplier, self._max_delay))

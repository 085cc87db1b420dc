"""FIFO buffer for sends issued while the session is not ready.

This module provides:
- QueueEntry: One pending send
- DrainFailurePolicy: What happens to an entry whose drain dispatch fails
- OutboundQueue: The buffer and its paced, interruptible drain loop

Draining is best-effort: every entry is attempted once. The loop re-checks
readiness before each entry, so a session drop stops it after the entry in
flight and leaves the rest queued in order for the next open.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DispatchFn = Callable[[str, str], Awaitable[Any]]
ReadyFn = Callable[[], bool]
SleepFn = Callable[[float], Awaitable[Any]]

DEFAULT_PACING_INTERVAL = 1.0


@dataclass(frozen=True)
class QueueEntry:
    """A send waiting for the session to open."""

    recipient: str
    payload: str
    enqueued_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class DeadLetter:
    """An entry whose drain dispatch failed, kept for operators."""

    entry: QueueEntry
    error: str
    failed_at: float = field(default_factory=time.time)


class DrainFailurePolicy(Enum):
    """Handling of entries that fail during a drain."""

    DROP = "drop"
    DEAD_LETTER = "dead_letter"


@dataclass
class DrainResult:
    """Counters for one drain pass."""

    sent: int = 0
    failed: int = 0
    interrupted: bool = False


class OutboundQueue:
    """FIFO queue of pending sends, gated on session readiness."""

    def __init__(
        self,
        pacing_interval: float = DEFAULT_PACING_INTERVAL,
        failure_policy: DrainFailurePolicy = DrainFailurePolicy.DROP,
        dead_letter_limit: int = 100,
        sleep: Optional[SleepFn] = None,
    ):
        """Initialize queue.

        Args:
            pacing_interval: Pause after each successful drain dispatch.
            failure_policy: Handling of entries that fail while draining.
            dead_letter_limit: Max dead letters kept (oldest evicted).
            sleep: Injectable async sleep for testing.
        """
        self._entries: deque[QueueEntry] = deque()
        self._pacing_interval = pacing_interval
        self._failure_policy = failure_policy
        self._dead_letters: deque[DeadLetter] = deque(maxlen=dead_letter_limit)
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._dropped = 0

    @property
    def failure_policy(self) -> DrainFailurePolicy:
        return self._failure_policy

    @property
    def dropped_count(self) -> int:
        """Entries dropped after a failed drain dispatch."""
        return self._dropped

    @property
    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    def enqueue(self, entry: QueueEntry) -> int:
        """Append an entry to the tail.

        Returns:
            Queue depth after the append.
        """
        self._entries.append(entry)
        depth = len(self._entries)
        logger.info(f"Message queued for {entry.recipient} ({depth} pending)")
        return depth

    def peek(self) -> Optional[QueueEntry]:
        """Return the head entry without removing it."""
        return self._entries[0] if self._entries else None

    def snapshot(self) -> list[QueueEntry]:
        """Return pending entries in dispatch order."""
        return list(self._entries)

    def clear(self) -> list[QueueEntry]:
        """Remove and return every pending entry."""
        entries = list(self._entries)
        self._entries.clear()
        return entries

    async def drain(self, dispatch: DispatchFn, is_ready: ReadyFn) -> DrainResult:
        """Dispatch queued entries in order while is_ready() holds.

        Args:
            dispatch: Async callable (recipient, payload) that raises on failure.
            is_ready: Readiness gate checked before every entry.

        Returns:
            Counters for this pass.
        """
        result = DrainResult()
        if not self._entries:
            return result

        logger.info(f"Draining {len(self._entries)} queued messages...")

        while self._entries:
            if not is_ready():
                result.interrupted = True
                logger.info(
                    f"Session not ready, drain paused with {len(self._entries)} pending"
                )
                break

            entry = self._entries.popleft()
            try:
                await dispatch(entry.recipient, entry.payload)
            except Exception as e:
                result.failed += 1
                self._handle_failure(entry, e)
                continue

            result.sent += 1
            logger.info(f"Queued message sent to {entry.recipient}")
            await self._sleep(self._pacing_interval)

        logger.info(
            f"Drain finished: sent={result.sent} failed={result.failed} "
            f"pending={len(self._entries)}"
        )
        return result

    def _handle_failure(self, entry: QueueEntry, error: Exception) -> None:
        if self._failure_policy is DrainFailurePolicy.DEAD_LETTER:
            self._dead_letters.append(DeadLetter(entry=entry, error=str(error)))
            logger.error(
                f"Queued message to {entry.recipient} failed, dead-lettered: {error}"
            )
            return

        self._dropped += 1
        logger.error(f"Queued message to {entry.recipient} failed, dropped: {error}")

    def __len__(self) -> int:
        return len(self._entries)

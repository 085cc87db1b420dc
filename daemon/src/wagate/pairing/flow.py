"""Pairing challenge tracking with an attempt ceiling.

The transport keeps issuing fresh challenges while nobody completes the
pairing. After max_attempts challenges without an open session the flow
reports exhaustion so the manager can tear the session down and retry
later instead of cycling challenges forever.
"""

import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

MAX_PAIRING_ATTEMPTS = 3

ExhaustedCallback = Callable[[], Awaitable[None]]
# Presentation hook; sync or async, receives (payload, attempt, max_attempts).
PresenterCallback = Union[
    Callable[[str, int, int], Awaitable[Any]],
    Callable[[str, int, int], Any],
]


@dataclass(frozen=True)
class PairingView:
    """Read-only view of the pairing state for an operator surface."""

    challenge: Optional[str]
    attempts: int
    max_attempts: int
    issued_at: Optional[float]

    def to_dict(self) -> dict:
        return {
            "challenge": self.challenge,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "issued_at": self.issued_at,
        }


class PairingFlow:
    """Counts pairing challenges and trips after the ceiling."""

    def __init__(
        self,
        on_exhausted: ExhaustedCallback,
        max_attempts: int = MAX_PAIRING_ATTEMPTS,
        presenter: Optional[PresenterCallback] = None,
    ):
        """Initialize pairing flow.

        Args:
            on_exhausted: Called when the ceiling is reached.
            max_attempts: Challenges allowed before exhaustion.
            presenter: Optional hook notified of each new challenge.
        """
        self._on_exhausted = on_exhausted
        self._max_attempts = max_attempts
        self._presenter = presenter

        self._attempts = 0
        self._challenge: Optional[str] = None
        self._issued_at: Optional[float] = None

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def challenge(self) -> Optional[str]:
        """Current challenge payload awaiting an operator, if any."""
        return self._challenge

    def view(self) -> PairingView:
        return PairingView(
            challenge=self._challenge,
            attempts=self._attempts,
            max_attempts=self._max_attempts,
            issued_at=self._issued_at,
        )

    async def on_challenge(self, payload: str) -> bool:
        """Record a new challenge.

        Args:
            payload: Challenge token issued by the transport.

        Returns:
            True if this challenge exhausted the attempts.
        """
        self._attempts += 1
        self._challenge = payload
        self._issued_at = time.time()

        logger.info(
            f"Pairing challenge issued (attempt {self._attempts}/{self._max_attempts})"
        )
        await self._present(payload)

        if self._attempts < self._max_attempts:
            return False

        logger.warning("Too many pairing attempts, restarting connection...")
        self._attempts = 0
        self._challenge = None
        self._issued_at = None
        await self._on_exhausted()
        return True

    def reset(self) -> None:
        """Forget the current challenge and zero the counter."""
        if self._attempts or self._challenge:
            logger.debug("Pairing state reset")
        self._attempts = 0
        self._challenge = None
        self._issued_at = None

    async def _present(self, payload: str) -> None:
        if self._presenter is None:
            return
        try:
            result = self._presenter(payload, self._attempts, self._max_attempts)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Pairing presenter failed: {e}")

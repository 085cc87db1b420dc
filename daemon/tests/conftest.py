"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Callable, Optional

import pytest
import pytest_asyncio

from wagate.config import ConnectionConfig, QueueConfig
from wagate.connection_manager import ConnectionManager
from wagate.errors import StorageError
from wagate.protocols import TransportEvent


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from wagate.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


# =============================================================================
# Transport doubles
# =============================================================================


class FakeSessionHandle:
    """Session handle whose events are emitted by the test."""

    def __init__(self, credentials: Optional[bytes] = None):
        self.credentials = credentials
        self.sent: list[tuple[str, str]] = []
        self.closed = False
        self.send_error: Optional[Exception] = None
        # Recipients whose sends fail, for drain failure tests
        self.failing_recipients: set[str] = set()
        self.on_send: Optional[Callable[[str, str], None]] = None
        self._callback: Optional[Callable[[TransportEvent], None]] = None

    def subscribe(self, callback: Callable[[TransportEvent], None]) -> None:
        self._callback = callback

    def emit(self, event: TransportEvent) -> None:
        """Deliver an event the way a transport library would."""
        assert self._callback is not None, "handle was never subscribed"
        self._callback(event)

    async def send_text(self, recipient: str, text: str) -> None:
        if self.closed:
            raise ConnectionError("session closed")
        if self.send_error is not None:
            raise self.send_error
        if recipient in self.failing_recipients:
            raise ConnectionError(f"rejected {recipient}")
        self.sent.append((recipient, text))
        if self.on_send is not None:
            self.on_send(recipient, text)

    async def close(self) -> None:
        self.closed = True


class FakeTransport:
    """Transport that hands out FakeSessionHandles."""

    def __init__(self):
        self.handles: list[FakeSessionHandle] = []
        self.connect_calls: list[Optional[bytes]] = []
        self.fail_next: list[Exception] = []

    @property
    def handle(self) -> FakeSessionHandle:
        """Most recently created handle."""
        return self.handles[-1]

    async def connect(self, credentials: Optional[bytes]) -> FakeSessionHandle:
        self.connect_calls.append(credentials)
        if self.fail_next:
            raise self.fail_next.pop(0)
        handle = FakeSessionHandle(credentials)
        self.handles.append(handle)
        return handle


class MemoryCredentialStore:
    """In-memory credential store."""

    def __init__(self, blob: Optional[bytes] = None):
        self.blob = blob
        self.saves: list[bytes] = []
        self.fail_save = False
        self.fail_load = False

    def load(self) -> Optional[bytes]:
        if self.fail_load:
            raise StorageError("disk unreadable")
        return self.blob

    def save(self, blob: bytes) -> None:
        if self.fail_save:
            raise StorageError("disk full")
        self.blob = blob
        self.saves.append(blob)

    def clear(self) -> bool:
        had_blob = self.blob is not None
        self.blob = None
        return had_blob


# =============================================================================
# Time doubles
# =============================================================================


class ManualTimer:
    """Timer that only fires when the test says so."""

    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    async def fire(self) -> None:
        assert not self.cancelled, "cannot fire a cancelled timer"
        self.fired = True
        await self.callback()


class ManualTimerFactory:
    """Timer factory recording every armed timer."""

    def __init__(self):
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.timers]

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    async def fire_pending(self) -> None:
        """Fire the single pending timer."""
        pending = self.pending
        assert len(pending) == 1, f"expected one pending timer, got {len(pending)}"
        await pending[0].fire()


class RecordingSleep:
    """Async sleep double that records delays and only yields to the loop."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await asyncio.sleep(0)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def credential_store():
    return MemoryCredentialStore()


@pytest.fixture
def timers():
    return ManualTimerFactory()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest_asyncio.fixture
async def make_manager(transport, credential_store, timers, sleep):
    """Factory building ConnectionManagers wired to the doubles.

    Every manager built is shut down after the test.
    """
    managers: list[ConnectionManager] = []

    def _make(**overrides) -> ConnectionManager:
        kwargs = dict(
            transport=transport,
            credential_store=credential_store,
            config=ConnectionConfig(),
            queue_config=QueueConfig(),
            timer_factory=timers,
            sleep=sleep,
        )
        kwargs.update(overrides)
        manager = ConnectionManager(**kwargs)
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        await manager.shutdown()


@pytest.fixture
def manager(make_manager):
    return make_manager()

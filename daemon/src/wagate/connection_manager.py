"""Own the transport session and gate outbound sends on its readiness.

The manager is the only holder of the SessionHandle. Transport callbacks
never touch manager state directly: they post (handle, event) pairs to an
internal queue that a single dispatcher task consumes, so state
transitions happen one at a time and in arrival order. Events coming from
a handle that has since been torn down are ignored.

Usage:
    manager = ConnectionManager(transport, credential_store)
    await manager.start()

    result = await manager.send("15551234567", "hello")
    if result.status is SendStatus.QUEUED:
        ...  # delivered once the session opens

    await manager.shutdown()
"""

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from wagate.config import ConnectionConfig, QueueConfig
from wagate.errors import StorageError, TransportError
from wagate.outbound_queue import (
    DrainFailurePolicy,
    OutboundQueue,
    QueueEntry,
)
from wagate.pairing.flow import PairingFlow, PairingView, PresenterCallback
from wagate.protocols import (
    ConnectionClosed,
    ConnectionOpened,
    ConnectionState,
    CredentialsUpdated,
    CredentialStoreProtocol,
    PairingChallenge,
    SessionHandle,
    Transport,
    TransportEvent,
)
from wagate.reconnect import ReconnectScheduler
from wagate.timers import TimerFactory

logger = logging.getLogger(__name__)

# Numeric recipient identifier, country code included
RECIPIENT_PATTERN = re.compile(r"[0-9]{10,15}")


class SendStatus(Enum):
    """Outcome of a send request."""

    SENT = "sent"
    QUEUED = "queued"
    DISPATCH_FAILED = "dispatch_failed"
    INVALID_ARGUMENT = "invalid_argument"
    NOT_INITIALIZED = "not_initialized"


@dataclass(frozen=True)
class SendResult:
    """Result returned to send callers."""

    status: SendStatus
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True if the message was sent or accepted into the queue."""
        return self.status in (SendStatus.SENT, SendStatus.QUEUED)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"status": self.status.value}
        if self.detail is not None:
            data["detail"] = self.detail
        return data


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time view of the manager for health and monitoring."""

    state: ConnectionState
    queue_depth: int
    last_error: Optional[str]
    logged_out: bool
    pairing_attempts: int
    reconnect_pending: bool
    dropped_messages: int
    dead_letters: int
    queue_warning_depth: int = 100

    @property
    def queue_backlogged(self) -> bool:
        return self.queue_depth > self.queue_warning_depth

    @property
    def health(self) -> str:
        """"ok", "degraded", or "logged_out" (needs re-pairing)."""
        if self.logged_out:
            return "logged_out"
        if self.state is not ConnectionState.OPEN or self.queue_backlogged:
            return "degraded"
        return "ok"

    def to_dict(self) -> dict:
        return {
            "health": self.health,
            "state": self.state.value,
            "queue_depth": self.queue_depth,
            "queue_status": "backlogged" if self.queue_backlogged else "normal",
            "last_error": self.last_error,
            "logged_out": self.logged_out,
            "pairing_attempts": self.pairing_attempts,
            "reconnect_pending": self.reconnect_pending,
            "dropped_messages": self.dropped_messages,
            "dead_letters": self.dead_letters,
        }


class ConnectionManager:
    """Drive the session lifecycle and route sends through the readiness gate."""

    def __init__(
        self,
        transport: Transport,
        credential_store: CredentialStoreProtocol,
        config: Optional[ConnectionConfig] = None,
        queue_config: Optional[QueueConfig] = None,
        timer_factory: Optional[TimerFactory] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        on_pairing_challenge: Optional[PresenterCallback] = None,
    ):
        """Initialize connection manager.

        Args:
            transport: Messaging transport used to create sessions.
            credential_store: Persistence for the transport's credential blob.
            config: Reconnect and pairing settings.
            queue_config: Outbound queue settings.
            timer_factory: Injectable reconnect timer factory (for testing).
            sleep: Injectable async sleep used by the drain (for testing).
            on_pairing_challenge: Presentation hook for new challenges.
        """
        self._transport = transport
        self._credentials = credential_store
        self._config = config or ConnectionConfig()
        queue_config = queue_config or QueueConfig()

        self._sleep = sleep or asyncio.sleep
        self._drain_delay = queue_config.drain_delay
        self._queue_warning_depth = queue_config.warning_depth

        self._queue = OutboundQueue(
            pacing_interval=queue_config.pacing_interval,
            failure_policy=DrainFailurePolicy(queue_config.failure_policy),
            dead_letter_limit=queue_config.dead_letter_limit,
            sleep=self._sleep,
        )
        self._reconnect = ReconnectScheduler(
            reconnect=self.reconnect,
            timer_factory=timer_factory,
            max_delay=self._config.max_reconnect_delay,
            multiplier=self._config.backoff_multiplier,
        )
        self._pairing = PairingFlow(
            on_exhausted=self._on_pairing_exhausted,
            max_attempts=self._config.max_pairing_attempts,
            presenter=on_pairing_challenge,
        )

        self._state = ConnectionState.DISCONNECTED
        self._handle: Optional[SessionHandle] = None
        self._started = False
        self._initializing = False
        self._closing = False
        self._shut_down = False
        self._logged_out = False
        self._last_error: Optional[str] = None

        self._events: asyncio.Queue[tuple[SessionHandle, TransportEvent]] = (
            asyncio.Queue()
        )
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._drain_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Read-only accessors
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        """Readiness gate: sends dispatch immediately only when True."""
        return (
            self._state is ConnectionState.OPEN
            and self._handle is not None
            and not self._closing
        )

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def reconnect_scheduler(self) -> ReconnectScheduler:
        return self._reconnect

    def pending_messages(self) -> list[QueueEntry]:
        """Queued sends in dispatch order."""
        return self._queue.snapshot()

    def status(self) -> StatusSnapshot:
        """Snapshot for health/monitoring. No side effects."""
        return StatusSnapshot(
            state=self._state,
            queue_depth=len(self._queue),
            last_error=self._last_error,
            logged_out=self._logged_out,
            pairing_attempts=self._pairing.attempts,
            reconnect_pending=self._reconnect.pending,
            dropped_messages=self._queue.dropped_count,
            dead_letters=len(self._queue.dead_letters),
            queue_warning_depth=self._queue_warning_depth,
        )

    def pairing_view(self) -> PairingView:
        """Current challenge and attempt count for an operator surface."""
        return self._pairing.view()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Open the session. No-op if started or a start is in progress.

        If the first attempt fails, a reconnect is scheduled with the
        failed-start delay instead of raising.
        """
        try:
            await self._open_session(is_reconnect=False)
        except Exception as e:
            logger.error(f"Failed to start session: {e}")
            self._reconnect.schedule(self._config.failed_start_delay)

    async def reconnect(self) -> None:
        """Replace the session. Raises if the transport cannot connect.

        Used by the reconnect scheduler, which backs off on failure.
        """
        await self._open_session(is_reconnect=True)

    async def shutdown(self) -> None:
        """Tear the session down. Idempotent."""
        if self._closing or self._shut_down:
            return

        logger.info("Shutting down connection manager...")
        self._closing = True
        self._set_state(ConnectionState.CLOSING)
        self._reconnect.cancel()

        try:
            # The drain re-checks readiness, so it stops after the entry in flight
            await self.wait_for_drain()
            await self._teardown_handle()
            await self._stop_dispatcher()

            remaining = self._queue.clear()
            if remaining:
                logger.warning(
                    f"Dropping {len(remaining)} queued messages on shutdown"
                )
        finally:
            self._shut_down = True
            self._closing = False
            self._set_state(ConnectionState.DISCONNECTED)

        logger.info("Connection manager stopped")

    async def wait_for_events(self) -> None:
        """Wait until every posted transport event has been handled."""
        if self._dispatcher_task is None or self._dispatcher_task.done():
            return
        await self._events.join()

    async def wait_for_drain(self) -> None:
        """Wait for the running drain pass, if any, to finish."""
        task = self._drain_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    # =========================================================================
    # Send API
    # =========================================================================

    async def send(self, recipient: str, text: str) -> SendResult:
        """Send a text message, or queue it while the session is not open.

        Args:
            recipient: Numeric identifier, 10 to 15 digits.
            text: Message body, must not be empty.

        Returns:
            SendResult. Dispatch failures are reported, never retried.
        """
        if not isinstance(recipient, str) or not RECIPIENT_PATTERN.fullmatch(recipient):
            return SendResult(
                SendStatus.INVALID_ARGUMENT,
                "Invalid recipient: expected 10-15 digits",
            )
        if not isinstance(text, str) or not text:
            return SendResult(
                SendStatus.INVALID_ARGUMENT,
                "Message text must be a non-empty string",
            )

        if not self._started or self._closing or self._shut_down:
            return SendResult(SendStatus.NOT_INITIALIZED, "Session not initialized")

        if not self.is_ready:
            logger.info("Session not ready, queueing message...")
            self._queue.enqueue(QueueEntry(recipient=recipient, payload=text))
            return SendResult(SendStatus.QUEUED)

        if self._queue:
            # Earlier sends are still draining; keep submission order
            self._queue.enqueue(QueueEntry(recipient=recipient, payload=text))
            self._start_drain()
            return SendResult(SendStatus.QUEUED)

        try:
            await self._dispatch(recipient, text)
        except Exception as e:
            logger.error(f"Failed to send message to {recipient}: {e}")
            return SendResult(SendStatus.DISPATCH_FAILED, str(e) or type(e).__name__)

        logger.info(f"Message sent to {recipient}")
        return SendResult(SendStatus.SENT)

    # =========================================================================
    # Session handle management
    # =========================================================================

    async def _open_session(self, is_reconnect: bool) -> None:
        """Tear down the current handle and create a new one."""
        if self._closing or self._shut_down:
            logger.debug("Connection manager closing, not opening a session")
            return
        if self._initializing:
            logger.info("Session already initializing, ignoring")
            return
        if not is_reconnect and self._started:
            logger.info("Session already started")
            return

        self._initializing = True
        try:
            self._ensure_dispatcher()
            await self._teardown_handle()
            self._set_state(ConnectionState.CONNECTING)

            credentials = self._load_credentials()
            handle = await self._transport.connect(credentials)

            if self._closing or self._shut_down:
                # Shutdown ran while connecting; the new handle is never adopted
                await self._close_handle(handle)
                return

            self._handle = handle
            handle.subscribe(functools.partial(self._post_event, handle))
            self._started = True
            if not is_reconnect:
                # A retry armed by an earlier failed start would replace this handle
                self._reconnect.cancel()
            logger.info("Session created, waiting for transport events")
        except Exception as e:
            self._last_error = f"Connect failed: {e}"
            if not self._closing:
                self._set_state(ConnectionState.DISCONNECTED)
            raise TransportError(str(e)) from e
        finally:
            self._initializing = False

    async def _teardown_handle(self) -> None:
        """Detach and close the current handle, if any."""
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        await self._close_handle(handle)

    async def _close_handle(self, handle: SessionHandle) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.warning(f"Error closing session: {e}")

    async def _dispatch(self, recipient: str, text: str) -> None:
        handle = self._handle
        if handle is None:
            raise TransportError("No active session")
        await handle.send_text(recipient, text)

    # =========================================================================
    # Credentials
    # =========================================================================

    def _load_credentials(self) -> Optional[bytes]:
        try:
            return self._credentials.load()
        except StorageError as e:
            logger.error(f"Failed to load credentials, pairing from scratch: {e}")
            self._last_error = str(e)
            return None

    def _save_credentials(self, blob: bytes) -> None:
        try:
            self._credentials.save(blob)
        except Exception as e:
            logger.error(f"Failed to save credentials: {e}")
            self._last_error = f"Credential save failed: {e}"

    # =========================================================================
    # Event dispatch
    # =========================================================================

    def _post_event(self, handle: SessionHandle, event: TransportEvent) -> None:
        """Transport callback. Must be called from the event loop thread."""
        self._events.put_nowait((handle, event))

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher_task is None or self._dispatcher_task.done():
            self._dispatcher_task = asyncio.create_task(self._dispatch_events())

    async def _stop_dispatcher(self) -> None:
        task = self._dispatcher_task
        self._dispatcher_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _dispatch_events(self) -> None:
        """Consume transport events one at a time."""
        while True:
            handle, event = await self._events.get()
            try:
                if handle is not self._handle:
                    logger.debug(f"Ignoring {type(event).__name__} from stale session")
                    continue
                await self._handle_event(event)
            except Exception as e:
                logger.error(f"Error handling {type(event).__name__}: {e}")
            finally:
                self._events.task_done()

    async def _handle_event(self, event: TransportEvent) -> None:
        if isinstance(event, CredentialsUpdated):
            self._save_credentials(event.blob)
        elif isinstance(event, PairingChallenge):
            self._set_state(ConnectionState.AWAITING_PAIRING)
            await self._pairing.on_challenge(event.payload)
        elif isinstance(event, ConnectionOpened):
            self._on_open()
        elif isinstance(event, ConnectionClosed):
            self._on_close(event)
        else:
            logger.warning(f"Unknown transport event: {event!r}")

    def _on_open(self) -> None:
        logger.info("Session open")
        self._set_state(ConnectionState.OPEN)
        self._logged_out = False
        self._pairing.reset()
        self._reconnect.cancel()
        self._start_drain()

    def _on_close(self, event: ConnectionClosed) -> None:
        reason = event.reason or "unknown"
        self._set_state(ConnectionState.DISCONNECTED)

        if self._closing:
            return

        if event.logged_out:
            self._logged_out = True
            self._last_error = (
                f"Logged out ({reason}): clear stored credentials and pair again"
            )
            logger.error(f"Session logged out ({reason}); re-pairing required")
            return

        self._last_error = f"Connection closed: {reason}"
        logger.warning(f"Connection closed ({reason}), reconnecting...")
        self._reconnect.schedule(self._config.reconnect_delay)

    async def _on_pairing_exhausted(self) -> None:
        await self._teardown_handle()
        self._set_state(ConnectionState.DISCONNECTED)
        self._reconnect.schedule(self._config.pairing_reconnect_delay)

    # =========================================================================
    # Queue drain
    # =========================================================================

    def _start_drain(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            return
        if not self._queue:
            return
        self._drain_task = asyncio.create_task(self._drain_queue())

    async def _drain_queue(self) -> None:
        try:
            if self._drain_delay > 0:
                await self._sleep(self._drain_delay)
            await self._queue.drain(self._dispatch, lambda: self.is_ready)
        except Exception as e:
            logger.error(f"Error draining queue: {e}")

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(f"State {self._state.value} -> {state.value}")
        self._state = state

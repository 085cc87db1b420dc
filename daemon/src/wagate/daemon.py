"""Main daemon orchestration - ties all components together."""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any, Optional

from wagate.config import Config
from wagate.connection_manager import ConnectionManager, SendResult
from wagate.credential_store import FileCredentialStore
from wagate.errors import ConfigError, StartupError
from wagate.pairing.flow import PresenterCallback
from wagate.protocols import CredentialStoreProtocol, Transport
from wagate.status_server import StatusServer
from wagate.transport_loader import load_transport

logger = logging.getLogger(__name__)


class Daemon:
    """Main daemon orchestrating all components.

    Responsibilities:
    - Build the transport and credential store from config
    - Own the ConnectionManager and start the session
    - Serve status and the pairing page over HTTP
    - Handle graceful shutdown on SIGINT/SIGTERM
    """

    def __init__(
        self,
        config: Config,
        transport: Optional[Transport] = None,
        credential_store: Optional[CredentialStoreProtocol] = None,
        status_server: Any = None,
        on_pairing_challenge: Optional[PresenterCallback] = None,
        install_signal_handlers: bool = True,
    ):
        """Initialize daemon.

        Args:
            config: Daemon configuration.
            transport: Optional injected transport (for testing).
            credential_store: Optional injected credential store (for testing).
            status_server: Optional injected status server (for testing).
            on_pairing_challenge: Presentation hook for pairing challenges.
            install_signal_handlers: Register SIGINT/SIGTERM handlers on start.
        """
        self._config = config
        self._transport = transport
        self._credential_store = credential_store
        self._status_server = status_server
        self._on_pairing_challenge = on_pairing_challenge
        self._install_signal_handlers = install_signal_handlers

        self._manager: Optional[ConnectionManager] = None
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def manager(self) -> ConnectionManager:
        """The connection manager. Only valid after start()."""
        if self._manager is None:
            raise RuntimeError("Daemon not started")
        return self._manager

    @property
    def status_server(self) -> Optional[StatusServer]:
        return self._status_server

    async def start(self) -> None:
        """Start the daemon.

        Raises:
            StartupError: If the transport or storage cannot be set up.
        """
        if self._running:
            return

        logger.info("Starting daemon...")
        self._stop_event = asyncio.Event()

        self._initialize_collaborators()

        self._manager = ConnectionManager(
            transport=self._transport,
            credential_store=self._credential_store,
            config=self._config.connection,
            queue_config=self._config.queue,
            on_pairing_challenge=self._on_pairing_challenge,
        )

        await self._start_status_server()
        await self._manager.start()

        if self._install_signal_handlers:
            self._setup_signals()

        self._running = True
        logger.info("Daemon started successfully")

    async def run_forever(self) -> None:
        """Run daemon until stop() or a shutdown signal."""
        if not self._running:
            await self.start()

        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Ask run_forever() to shut down."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def send(self, recipient: str, text: str) -> SendResult:
        """Entry point for upstream business logic."""
        return await self.manager.send(recipient, text)

    def _initialize_collaborators(self) -> None:
        """Create transport and credential store if not injected."""
        if self._transport is None:
            try:
                self._transport = load_transport(self._config.transport)
            except ConfigError as e:
                raise StartupError(str(e)) from e

        if self._credential_store is None:
            try:
                self._credential_store = FileCredentialStore(
                    Path(self._config.credentials_dir)
                )
            except OSError as e:
                raise StartupError(f"Cannot use credentials directory: {e}") from e

    async def _start_status_server(self) -> None:
        settings = self._config.status_server
        if not settings.enabled:
            return

        if self._status_server is None:
            self._status_server = StatusServer(self._manager)

        try:
            await self._status_server.start(settings.host, settings.port)
        except OSError as e:
            raise StartupError(
                f"Cannot bind status server to {settings.host}:{settings.port}: {e}"
            ) from e

    def _setup_signals(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda: asyncio.create_task(self.stop()),
            )

    async def _shutdown(self) -> None:
        """Perform graceful shutdown."""
        if not self._running:
            return
        self._running = False
        logger.info("Shutting down daemon...")

        if self._install_signal_handlers:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)

        if self._manager:
            await self._manager.shutdown()

        if self._status_server:
            await self._status_server.close()

        logger.info("Daemon stopped")

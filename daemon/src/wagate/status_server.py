"""Read-only HTTP surface for health checks and pairing.

Routes:
- GET /health: JSON health summary, 200 when ok, 503 otherwise
- GET /status: full status snapshot as JSON
- GET /qr: HTML page with the pending pairing challenge as a QR code

No route changes manager state.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web

from wagate import __version__
from wagate.connection_manager import ConnectionManager
from wagate.pairing.qr_renderer import QrRenderer, waiting_page

logger = logging.getLogger(__name__)


class StatusServer:
    """aiohttp server exposing manager status and the pairing code."""

    def __init__(self, manager: ConnectionManager):
        """Initialize status server.

        Args:
            manager: Connection manager to report on.
        """
        self._manager = manager
        self._started_at = time.time()

        self.app = web.Application()
        self._setup_routes()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._port: int = 0

    def _setup_routes(self) -> None:
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/status", self._handle_status)
        self.app.router.add_get("/qr", self._handle_qr)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        snapshot = self._manager.status()
        body = {
            "status": snapshot.health,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.time() - self._started_at, 1),
            "version": __version__,
            "checks": {
                "session": snapshot.state.value,
                "queue_depth": snapshot.queue_depth,
                "queue_status": "backlogged" if snapshot.queue_backlogged else "normal",
            },
        }
        status = 200 if snapshot.health == "ok" else 503
        return web.json_response(body, status=status)

    async def _handle_status(self, request: web.Request) -> web.Response:
        """Full status snapshot."""
        body = self._manager.status().to_dict()
        body["pairing"] = self._manager.pairing_view().to_dict()
        return web.json_response(body)

    async def _handle_qr(self, request: web.Request) -> web.Response:
        """Pairing page: QR code of the pending challenge, or a waiting page."""
        view = self._manager.pairing_view()
        if view.challenge is None:
            return web.Response(text=waiting_page(), content_type="text/html")

        renderer = QrRenderer(view.challenge)
        page = renderer.to_html(attempt=view.attempts, max_attempts=view.max_attempts)
        return web.Response(
            text=page,
            content_type="text/html",
            headers={"Cache-Control": "no-store"},
        )

    # =========================================================================
    # Server lifecycle
    # =========================================================================

    async def start(self, host: str, port: int) -> web.AppRunner:
        """Start the server.

        Args:
            host: Host to bind to.
            port: Port to bind to (0 for random).

        Returns:
            App runner for cleanup.
        """
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()

        # Get actual port
        if self._site._server and self._site._server.sockets:
            self._port = self._site._server.sockets[0].getsockname()[1]
        else:
            self._port = port

        logger.info(f"Status server started on http://{host}:{self._port}")
        return self._runner

    def get_port(self) -> int:
        """Get the actual bound port."""
        return self._port

    async def close(self) -> None:
        """Stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Status server closed")

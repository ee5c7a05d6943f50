"""
API Server - aiohttp-based REST server for the location tracker.

Runs on the tracker's event loop and exposes status and control endpoints.
"""

from typing import Optional

from aiohttp import web

from geotracker.core.logging_utils import get_module_logger

from .controller import TrackerAPIController
from .middleware import (
    error_handling_middleware,
    localhost_only_middleware,
    set_debug_mode,
)
from .routes import setup_tracker_routes


logger = get_module_logger("APIServer")


def create_app(controller: TrackerAPIController, localhost_only: bool = True) -> web.Application:
    """Create and configure the aiohttp application."""
    middlewares = [error_handling_middleware]
    if localhost_only:
        middlewares.insert(0, localhost_only_middleware)

    app = web.Application(middlewares=middlewares)
    app["controller"] = controller
    setup_tracker_routes(app)
    return app


class APIServer:
    """REST API server bound to one tracker controller."""

    def __init__(
        self,
        controller: TrackerAPIController,
        host: str = "127.0.0.1",
        port: int = 8090,
        localhost_only: bool = True,
        debug: bool = False,
    ):
        """
        Initialize the API server.

        Args:
            controller: TrackerAPIController wrapping the tracker
            host: Host to bind to (default: localhost only)
            port: Port to bind to (default: 8090)
            localhost_only: If True, reject requests from non-localhost
            debug: If True, include tracebacks in error responses
        """
        self.controller = controller
        self.host = host
        self.port = port
        self.localhost_only = localhost_only
        self.debug = debug

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._running = False

        set_debug_mode(debug)

    async def start(self) -> None:
        """Start the API server (non-blocking)."""
        if self._running:
            logger.warning("API server already running")
            return

        self._app = create_app(self.controller, self.localhost_only)
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        self._running = True
        mode_info = " (debug mode)" if self.debug else ""
        logger.info("API server started on http://%s:%d%s", self.host, self.port, mode_info)

    async def stop(self) -> None:
        """Stop the API server gracefully."""
        if not self._running:
            return

        logger.info("Stopping API server...")

        if self._site:
            await self._site.stop()
            self._site = None

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        self._app = None
        self._running = False

        logger.info("API server stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

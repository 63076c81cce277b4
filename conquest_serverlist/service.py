"""HTTP JSON API for the server list.

Serves the three operations of the legacy WCF web service. Every route is
also mounted under the legacy ``/ServerListService.svc/`` prefix so
existing front ends keep working.
"""

import logging
from typing import Optional

from aiohttp import web

from .coordinator import ServerListCoordinator
from .protocol import diagnostic_server

logger = logging.getLogger(__name__)

LEGACY_PREFIX = "/ServerListService.svc"


class ServerListService:
    def __init__(
        self,
        coordinator: ServerListCoordinator,
        host: str = "0.0.0.0",
        port: int = 8080,
    ):
        self._coordinator = coordinator
        self._host = host
        self._port = port

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

    # ── HTTP Route Handlers ──────────────────────────────────────────────

    async def handle_get_server(self, request: web.Request) -> web.Response:
        """GET /GetServer: static record for connectivity checks."""
        logger.debug("In method GetServer")
        return web.json_response(diagnostic_server().to_json())

    async def handle_reset_is_loading(self, request: web.Request) -> web.Response:
        """GET /ResetIsLoading: clear a wedged loading flag."""
        logger.debug("In method ResetIsLoading")
        self._coordinator.reset_loading()
        return web.json_response(["ok"])

    async def handle_get_server_list(self, request: web.Request) -> web.Response:
        """GET /GetServerList: cached, loading, or freshly collected list."""
        logger.debug("In method GetServerList")
        try:
            result = await self._coordinator.get_server_list()
        except OSError as e:
            return web.json_response(
                {"error": f"Server list unavailable: {e}"}, status=503,
            )
        return web.json_response(result.to_json())

    def routes(self) -> list:
        routes = []
        for prefix in ("", LEGACY_PREFIX):
            routes.extend([
                web.get(f"{prefix}/GetServer", self.handle_get_server),
                web.get(f"{prefix}/ResetIsLoading", self.handle_reset_is_loading),
                web.get(f"{prefix}/GetServerList", self.handle_get_server_list),
            ])
        return routes

    def build_app(self) -> web.Application:
        app = web.Application()
        app.add_routes(self.routes())
        return app

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info("Server list API on http://%s:%d", self._host, self._port)

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Server list API stopped")

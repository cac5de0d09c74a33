"""Health and stats HTTP server.

Read-only operational surface: ``GET /health`` for liveness and ``GET /stats``
for the cumulative triage counters.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from aiohttp import web

from core.stats import TriageStats

LOGGER = logging.getLogger(__name__)


class HealthServer:
    """aiohttp server exposing the triage stats."""

    def __init__(self, stats: TriageStats, host: str = "127.0.0.1", port: int = 8403) -> None:
        self._stats = stats
        self._host = host
        self._port = port
        self._started = time.monotonic()
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.health_handler)
        app.router.add_get("/stats", self.stats_handler)
        app.router.add_route("*", "/{tail:.*}", self.not_found_handler)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        LOGGER.info("Health server listening on http://%s:%s", self._host, self._port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def health_handler(self, request: web.Request) -> web.Response:
        snapshot = self._stats.snapshot()
        return web.json_response(
            {
                "status": snapshot["status"],
                "uptime": round(time.monotonic() - self._started, 3),
                "lastCheck": snapshot["lastCheck"],
                "lastError": snapshot["lastError"],
            }
        )

    async def stats_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"stats": self._stats.snapshot()})

    async def not_found_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"error": "Not found"}, status=404)

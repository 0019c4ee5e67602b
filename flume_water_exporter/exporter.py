"""HTTP listener serving the metrics registry."""

from __future__ import annotations

import logging

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from .errors import FatalErrorSignal

_LOGGER = logging.getLogger(__name__)


class Exporter:
    """Serve ``GET /metrics`` from a prometheus_client registry."""

    def __init__(self, registry: CollectorRegistry, host: str, port: int) -> None:
        self.registry = registry
        self.host = host
        self.port = port
        self.app = web.Application()
        self.app.router.add_get("/metrics", self.handle_metrics)
        self._runner: web.AppRunner | None = None

    async def handle_metrics(self, request: web.Request) -> web.Response:
        """Render the registry in the text exposition format."""
        return web.Response(
            body=generate_latest(self.registry),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    async def start(self, fatal: FatalErrorSignal) -> None:
        """Bind the listener, a failure to bind is fatal."""
        _LOGGER.info("Starting server on %s:%s", self.host, self.port)
        runner = web.AppRunner(self.app)
        await runner.setup()
        self._runner = runner
        try:
            await web.TCPSite(runner, self.host, self.port).start()
        except OSError as err:
            _LOGGER.error("Failed to start server on %s:%s: %s", self.host, self.port, err)
            fatal.notify(err)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

"""Wire the client, poller and exporter together and wait for a fatal error."""

from __future__ import annotations

import asyncio
import logging

from prometheus_client import CollectorRegistry, ProcessCollector

from .config import Configuration
from .errors import FatalErrorSignal
from .exceptions import FlumeError
from .exporter import Exporter
from .flume import Flume
from .metrics import ClientMetrics, PrometheusSink
from .poller import Poller
from .session import CredentialSession

_LOGGER = logging.getLogger(__name__)

EXIT_CODE_OK = 0
EXIT_CODE_FATAL = 1


async def run(configuration: Configuration) -> int:
    """Run the exporter until a fatal error occurs and return the exit code."""
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    sink = PrometheusSink(registry)
    fatal = FatalErrorSignal()

    client = Flume(
        configuration.client_id,
        configuration.client_secret,
        timeout=configuration.request_timeout,
        metrics=ClientMetrics(registry),
    )
    exporter = Exporter(registry, configuration.bind_host, configuration.bind_port)
    poller_task: asyncio.Task | None = None

    def _poller_done(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            fatal.notify(task.exception())

    try:
        try:
            session = await CredentialSession.login(
                client, configuration.username, configuration.password
            )
        except FlumeError as err:
            _LOGGER.error("Unable to log in to Flume: %s", err, exc_info=err)
            return EXIT_CODE_FATAL

        poller = Poller(
            session,
            sink,
            fatal,
            device_interval=configuration.device_interval,
            budget_interval=configuration.budget_interval,
            query_interval=configuration.query_interval,
        )
        poller_task = asyncio.create_task(poller.run())
        poller_task.add_done_callback(_poller_done)
        await exporter.start(fatal)

        error = await fatal.wait()
        _LOGGER.error("Exiting after fatal error: %s", error, exc_info=error)
        return EXIT_CODE_FATAL
    finally:
        if poller_task is not None:
            poller_task.cancel()
            await asyncio.gather(poller_task, return_exceptions=True)
        await exporter.stop()
        await client.close_connection()

"""Failure policy: which errors wait for the next tick and which end the process."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Iterator

import aiohttp

from .exceptions import FlumeTransportError

_LOGGER = logging.getLogger(__name__)


class ErrorPolicy(Enum):
    """What to do with a failed refresh."""

    IGNORABLE = "ignorable"
    FATAL = "fatal"


def cause_chain(err: BaseException) -> Iterator[BaseException]:
    """Yield ``err`` followed by its causes, outermost first."""
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _is_transient(err: BaseException) -> bool:
    if isinstance(err, (FlumeTransportError, asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(err, aiohttp.ClientConnectionError):
        return True
    # A response with a bad status reached us, the upstream was not unreachable
    if isinstance(err, aiohttp.ClientResponseError):
        return False
    return isinstance(err, aiohttp.ClientError)


def classify(err: BaseException) -> ErrorPolicy:
    """Return IGNORABLE when the upstream was transiently unreachable."""
    if any(_is_transient(cause) for cause in cause_chain(err)):
        return ErrorPolicy.IGNORABLE
    return ErrorPolicy.FATAL


class FatalErrorSignal:
    """One-shot notification of the error that ends the process.

    The first error wins; later ones are dropped since shutdown is already
    under way.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[BaseException] | None = None

    def _get_future(self) -> asyncio.Future[BaseException]:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def is_set(self) -> bool:
        return self._future is not None and self._future.done()

    def notify(self, err: BaseException) -> None:
        future = self._get_future()
        if future.done():
            _LOGGER.debug("Dropping fatal error after shutdown started: %r", err)
            return
        future.set_result(err)

    async def wait(self) -> BaseException:
        """Wait for the first fatal error and return it."""
        return await asyncio.shield(self._get_future())

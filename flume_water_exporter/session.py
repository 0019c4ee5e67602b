"""Credential lifecycle on top of the Flume client."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable

from .flume import Flume
from .models import Budget, Credential, DeviceRecord, QueryWindow, Sensor

_LOGGER = logging.getLogger(__name__)


class CredentialSession:
    """Flume client bound to a credential that is refreshed when stale.

    Refresh happens lazily on the next call after expiry. Only one task is
    expected to use a session, so refreshes never overlap.
    """

    def __init__(
        self,
        client: Flume,
        credential: Credential,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self._credential = credential
        self._clock = clock

    @classmethod
    async def login(
        cls,
        client: Flume,
        username: str,
        password: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> CredentialSession:
        """Authenticate with the password grant and return a session."""
        credential = await client.authenticate(username, password)
        _LOGGER.info("Logged in to Flume as %s", username)
        return cls(client, credential, clock)

    @property
    def credential(self) -> Credential:
        return self._credential

    async def ensure_valid(self) -> Credential:
        """Return a usable credential, refreshing it first if it expired.

        The current credential is kept until the refresh succeeds; refresh
        errors propagate unchanged.
        """
        if not self._credential.is_expired(self._clock()):
            return self._credential

        _LOGGER.debug("Access token expired, refreshing")
        self._credential = await self.client.refresh(self._credential.refresh_token)
        return self._credential

    async def user_id(self) -> int:
        credential = await self.ensure_valid()
        return await self.client.resolve_identity(credential.access_token)

    async def devices(self, user_id: int) -> list[DeviceRecord]:
        credential = await self.ensure_valid()
        return await self.client.list_devices(credential.access_token, user_id)

    async def query_usage(self, user_id: int, sensor: Sensor, until: datetime) -> float:
        """Return usage of ``sensor`` from its watermark up to ``until``."""
        credential = await self.ensure_valid()
        window = QueryWindow(
            since=sensor.last_update,
            until=until.astimezone(sensor.timezone),
        )
        return await self.client.query_usage(credential.access_token, user_id, sensor.id, window)

    async def budgets(self, user_id: int, sensor: Sensor) -> list[Budget]:
        credential = await self.ensure_valid()
        return await self.client.list_budgets(credential.access_token, user_id, sensor.id)

"""Scheduler that polls Flume and publishes the results to a metric sink."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from .adapters import battery_level_value, to_device
from .const import (
    DEFAULT_BUDGET_INTERVAL,
    DEFAULT_DEVICE_INTERVAL,
    DEFAULT_QUERY_INTERVAL,
    GALLONS_TO_LITERS,
)
from .errors import ErrorPolicy, FatalErrorSignal, classify
from .metrics import MetricSink
from .models import Bridge, Sensor
from .session import CredentialSession

_LOGGER = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_deadline(previous: float, period: float, now: float) -> float:
    """Return the first tick deadline after ``previous`` that is not in the past.

    Ticks missed while the previous one overran are skipped, not replayed.
    """
    deadline = previous + period
    if now > deadline:
        deadline += math.ceil((now - deadline) / period) * period
    return deadline


def is_stale(last_refreshed: datetime | None, interval: timedelta, now: datetime) -> bool:
    return last_refreshed is None or now - last_refreshed >= interval


class Poller:
    """Runs the device, budget and usage refresh cycles on a fixed tick.

    Each tick first makes sure the user id is known, then refreshes the
    device inventory if it is stale, then budgets if stale, then queries
    usage for every known sensor since its watermark. Inventory always runs
    first because budgets and usage work on the sensors it discovered.
    """

    def __init__(
        self,
        session: CredentialSession,
        sink: MetricSink,
        fatal: FatalErrorSignal,
        device_interval: float = DEFAULT_DEVICE_INTERVAL,
        budget_interval: float = DEFAULT_BUDGET_INTERVAL,
        query_interval: float = DEFAULT_QUERY_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._sink = sink
        self._fatal = fatal
        self._device_interval = timedelta(seconds=device_interval)
        self._budget_interval = timedelta(seconds=budget_interval)
        self._query_interval = query_interval
        self._clock = clock

        self.user_id: int | None = None
        self.sensors: list[Sensor] = []
        self.devices_refreshed_at: datetime | None = None
        self.budgets_refreshed_at: datetime | None = None
        self.stopped = False

    async def run(self) -> None:
        """Tick every ``query_interval`` seconds until a fatal error occurs."""
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        _LOGGER.info("Polling Flume every %s seconds", self._query_interval)
        while not self.stopped:
            await self.tick()
            if self.stopped:
                break
            deadline = next_deadline(deadline, self._query_interval, loop.time())
            await asyncio.sleep(max(0.0, deadline - loop.time()))

    async def tick(self) -> None:
        """Perform the work whose staleness window has elapsed."""
        now = self._clock()

        if not await self._guard("user id", self._refresh_user_id) or self.user_id is None:
            return
        user_id = self.user_id

        if is_stale(self.devices_refreshed_at, self._device_interval, now):
            if await self._guard("devices", self._refresh_devices, user_id):
                self.devices_refreshed_at = now
            if self.stopped:
                return

        if is_stale(self.budgets_refreshed_at, self._budget_interval, now):
            if await self._guard("budgets", self._refresh_budgets, user_id):
                self.budgets_refreshed_at = now
            if self.stopped:
                return

        await self._guard("usage", self._query_usage, user_id)

    async def _guard(
        self, phase: str, refresh: Callable[..., Awaitable[None]], *args: Any
    ) -> bool:
        """Run one refresh phase and apply the error policy to its failure.

        Returns True when the phase completed.
        """
        if self.stopped:
            return False
        try:
            await refresh(*args)
        except Exception as err:
            if classify(err) is ErrorPolicy.IGNORABLE:
                _LOGGER.warning("Flume unreachable while refreshing %s, retrying next tick: %s", phase, err)
                return False
            _LOGGER.error("Fatal error while refreshing %s: %s", phase, err)
            self.stopped = True
            self._fatal.notify(err)
            return False
        return True

    async def _refresh_user_id(self) -> None:
        if self.user_id is not None:
            return
        self.user_id = await self._session.user_id()
        _LOGGER.debug("Flume user id is %s", self.user_id)

    async def _refresh_devices(self, user_id: int) -> None:
        records = await self._session.devices(user_id)
        devices = [to_device(record) for record in records]

        sensors: list[Sensor] = []
        for device in devices:
            if isinstance(device, Bridge):
                self._publish_bridge(device)
            elif isinstance(device, Sensor):
                self._publish_sensor(device)
                sensors.append(self._keep_watermark(device))

        self.sensors = sensors
        _LOGGER.info("Found %d bridges and %d sensors", len(devices) - len(sensors), len(sensors))

    def _keep_watermark(self, sensor: Sensor) -> Sensor:
        """Carry the watermark of a sensor that was already being queried.

        The server last seen time only seeds newly discovered sensors.
        """
        for known in self.sensors:
            if known.id == sensor.id:
                return replace(sensor, last_update=known.last_update)
        return sensor

    def _publish_bridge(self, bridge: Bridge) -> None:
        location = {"location": bridge.location}
        self._sink.set_gauge("bridge_connected", location, 1.0 if bridge.connected else 0.0)
        self._sink.set_gauge(
            "bridge_product_info",
            {"location": bridge.location, "product": bridge.product},
            1.0,
        )

    def _publish_sensor(self, sensor: Sensor) -> None:
        location = {"location": sensor.location}
        self._sink.set_gauge("sensor_connected", location, 1.0 if sensor.connected else 0.0)
        self._sink.set_gauge(
            "sensor_product_info",
            {"location": sensor.location, "product": sensor.product},
            1.0,
        )
        self._sink.set_gauge(
            "sensor_battery_info", location, battery_level_value(sensor.battery_level)
        )

    async def _refresh_budgets(self, user_id: int) -> None:
        for sensor in self.sensors:
            budgets = await self._session.budgets(user_id, sensor)
            for budget in budgets:
                self._sink.set_gauge(
                    "budget_liters",
                    {
                        "location": sensor.location,
                        "period": budget.period.value,
                        "name": budget.name,
                    },
                    budget.limit_volume * GALLONS_TO_LITERS,
                )

    async def _query_usage(self, user_id: int) -> None:
        for index, sensor in enumerate(self.sensors):
            now = self._clock()
            usage = await self._session.query_usage(user_id, sensor, now)
            _LOGGER.debug("Sensor %s used %s liters since %s", sensor.id, usage, sensor.last_update)
            self._sink.increment_counter("usage_liters", {"location": sensor.location}, usage)
            self.sensors[index] = sensor.with_watermark(now)

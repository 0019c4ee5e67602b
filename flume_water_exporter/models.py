"""Data models for the Flume water exporter."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Union
from zoneinfo import ZoneInfo

from .const import QUERY_DATETIME_FORMAT


@dataclass(frozen=True)
class Credential:
    """OAuth token pair together with the time it was issued."""

    access_token: str
    refresh_token: str
    expires_in: int
    issued_at: float

    def is_expired(self, now: float) -> bool:
        """Return True when the access token should no longer be used."""
        return now - self.issued_at >= self.expires_in


@dataclass(frozen=True)
class Location:
    """Location a device is installed at."""

    name: str
    tz: str


@dataclass(frozen=True)
class BridgeRecord:
    """Bridge as returned by the devices endpoint."""

    id: str
    location: Location | None
    product: str
    connected: bool


@dataclass(frozen=True)
class SensorRecord:
    """Sensor as returned by the devices endpoint."""

    id: str
    location: Location | None
    product: str
    connected: bool
    battery_level: str
    last_seen: str


DeviceRecord = Union[BridgeRecord, SensorRecord]


@dataclass(frozen=True)
class Bridge:
    """Connectivity relay, has no usage data."""

    location: str
    product: str
    connected: bool


@dataclass(frozen=True)
class Sensor:
    """Water meter together with its usage watermark."""

    id: str
    location: str
    product: str
    connected: bool
    battery_level: str
    timezone: ZoneInfo
    last_update: datetime  # usage is accounted for up to here

    def with_watermark(self, when: datetime) -> Sensor:
        """Return a copy whose usage is accounted for up to ``when``."""
        when = when.astimezone(self.timezone)
        if when < self.last_update:
            return self
        return replace(self, last_update=when)


Device = Union[Bridge, Sensor]


class BudgetPeriod(Enum):
    """Period a budget applies to."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class Budget:
    """Snapshot of a budget, volumes in gallons."""

    id: int
    name: str
    period: BudgetPeriod
    limit_volume: float
    thresholds: list[int] = field(default_factory=list)
    actual_volume: float = 0.0


@dataclass(frozen=True)
class QueryWindow:
    """Half open interval [since, until) of local wall-clock time."""

    since: datetime
    until: datetime

    @property
    def since_datetime(self) -> str:
        return self.since.strftime(QUERY_DATETIME_FORMAT)

    @property
    def until_datetime(self) -> str:
        return self.until.strftime(QUERY_DATETIME_FORMAT)

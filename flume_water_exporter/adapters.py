"""Turn Flume wire records into devices."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .const import BATTERY_LEVEL
from .exceptions import FlumeDomainError
from .models import Bridge, BridgeRecord, Device, DeviceRecord, Sensor, SensorRecord


def battery_level_value(battery_level: str) -> float:
    """Map a battery level string to a gauge value, unknown levels are 0.0."""
    return BATTERY_LEVEL.get(battery_level, 0.0)


def to_bridge(record: BridgeRecord) -> Bridge:
    if record.location is None:
        raise FlumeDomainError(f"Bridge {record.id} has no location, fetch devices with location")
    return Bridge(
        location=record.location.name,
        product=record.product,
        connected=record.connected,
    )


def to_sensor(record: SensorRecord) -> Sensor:
    """Build a sensor whose watermark is its last seen time in local time.

    Usage is queried in local wall-clock minutes, so the watermark is kept
    in the sensor's own timezone rather than UTC.

    Raises:
        FlumeDomainError: If the location is missing, its timezone is not a
            known IANA zone, or ``last_seen`` is not an RFC3339 timestamp.
    """
    if record.location is None:
        raise FlumeDomainError(f"Sensor {record.id} has no location, fetch devices with location")

    try:
        timezone = ZoneInfo(record.location.tz)
    except (ZoneInfoNotFoundError, ValueError, OSError) as err:
        raise FlumeDomainError(f"Unknown sensor timezone {record.location.tz!r}") from err

    last_seen = record.last_seen
    if last_seen.endswith(("Z", "z")):
        last_seen = f"{last_seen[:-1]}+00:00"
    try:
        seen_at = datetime.fromisoformat(last_seen)
    except ValueError as err:
        raise FlumeDomainError(
            f"Unable to parse sensor last seen time {record.last_seen!r}"
        ) from err
    if seen_at.tzinfo is None:
        raise FlumeDomainError(f"Sensor last seen time {record.last_seen!r} has no offset")

    return Sensor(
        id=record.id,
        location=record.location.name,
        product=record.product,
        connected=record.connected,
        battery_level=record.battery_level,
        timezone=timezone,
        last_update=seen_at.astimezone(timezone),
    )


def to_device(record: DeviceRecord) -> Device:
    if isinstance(record, SensorRecord):
        return to_sensor(record)
    if isinstance(record, BridgeRecord):
        return to_bridge(record)
    raise FlumeDomainError(f"Unsupported device record {record!r}")

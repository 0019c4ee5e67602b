"""
Tests for turning wire records into devices.
"""
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from flume_water_exporter.adapters import battery_level_value, to_device, to_sensor
from flume_water_exporter.exceptions import FlumeDomainError
from flume_water_exporter.models import Bridge, BridgeRecord, Location, Sensor

from conftest import make_sensor, sensor_record


class TestBatteryLevel:
    """Test the battery level gauge mapping."""

    @pytest.mark.parametrize(
        "level, expected",
        [("high", 1.0), ("medium", 0.5), ("low", 0.25), ("", 0.0), ("critical", 0.0), ("HIGH", 0.0)],
    )
    def test_mapping(self, level, expected):
        assert battery_level_value(level) == expected


class TestToSensor:
    """Test sensor conversion."""

    def test_watermark_is_last_seen_in_local_time(self):
        """Test that last_seen is reinterpreted in the sensor's timezone."""
        sensor = to_sensor(sensor_record(last_seen="2024-05-01T12:00:00.000Z"))

        assert sensor.timezone.key == "America/Los_Angeles"
        assert sensor.last_update.tzinfo is sensor.timezone
        assert sensor.last_update.hour == 5
        assert sensor.last_update == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_missing_location_is_an_error(self):
        record = replace(sensor_record(), location=None)

        with pytest.raises(FlumeDomainError, match="no location"):
            to_sensor(record)

    @pytest.mark.parametrize("tz", ["Mars/Olympus_Mons", "../etc/passwd"])
    def test_unknown_timezone_is_an_error(self, tz):
        """Test that a bad zone is never defaulted to UTC."""
        with pytest.raises(FlumeDomainError, match="Unknown sensor timezone"):
            to_sensor(sensor_record(tz=tz))

    def test_unparseable_last_seen(self):
        with pytest.raises(FlumeDomainError):
            to_sensor(sensor_record(last_seen="yesterday"))

    def test_last_seen_without_offset(self):
        with pytest.raises(FlumeDomainError, match="no offset"):
            to_sensor(sensor_record(last_seen="2024-05-01T12:00:00"))


class TestToDevice:
    """Test dispatching on record type."""

    def test_bridge(self):
        record = BridgeRecord(
            id="bridge-1",
            location=Location(name="Cabin", tz="Europe/Oslo"),
            product="flume2bridge",
            connected=True,
        )

        assert to_device(record) == Bridge(location="Cabin", product="flume2bridge", connected=True)

    def test_bridge_without_location(self):
        record = BridgeRecord(id="bridge-1", location=None, product="flume2bridge", connected=True)

        with pytest.raises(FlumeDomainError):
            to_device(record)

    def test_sensor(self):
        assert isinstance(to_device(sensor_record()), Sensor)


class TestWatermark:
    """Test advancing a sensor watermark."""

    def test_advance_keeps_sensor_timezone(self):
        sensor = make_sensor(last_seen="2024-05-01T11:00:00+00:00")

        advanced = sensor.with_watermark(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))

        assert advanced.last_update.tzinfo is sensor.timezone
        assert advanced.last_update == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert sensor.last_update == datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)

    def test_watermark_never_moves_backwards(self):
        sensor = make_sensor(last_seen="2024-05-01T11:00:00+00:00")

        assert sensor.with_watermark(datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)) is sensor

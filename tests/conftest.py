"""
Shared pytest fixtures for the Flume water exporter tests.

Provides fixtures for:
- A fake Flume API served by aiohttp's TestServer
- A Flume client pointed at it
- A recording metric sink and controllable clocks
- A scripted credential session for poller tests
"""
import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from prometheus_client import CollectorRegistry

from flume_water_exporter.adapters import to_sensor
from flume_water_exporter.flume import Flume
from flume_water_exporter.metrics import ClientMetrics
from flume_water_exporter.models import Location, QueryWindow, Sensor, SensorRecord

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

SENSOR_DEVICE = {
    "id": "6248148189204194987",
    "type": 2,
    "location": {"name": "Home", "tz": "America/Los_Angeles"},
    "connected": True,
    "product": "flume2",
    "battery_level": "high",
    "last_seen": "2024-05-01T12:00:00.000Z",
}

BRIDGE_DEVICE = {
    "id": "6248148189204155555",
    "type": 1,
    "location": {"name": "Home", "tz": "America/Los_Angeles"},
    "connected": False,
    "product": "flume2bridge",
}

TOKEN = {
    "token_type": "bearer",
    "access_token": "access-1",
    "expires_in": 3600,
    "refresh_token": "refresh-1",
}


def envelope(data, success=True, code=602, message="Request OK"):
    """Build a Flume response envelope."""
    return {
        "success": success,
        "code": code,
        "message": message,
        "http_code": 200 if success else 400,
        "http_message": "OK" if success else "Bad Request",
        "detailed": None,
        "data": data,
        "count": len(data) if data else 0,
        "pagination": None,
    }


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: Dict[str, str]
    query: Dict[str, str]
    body: Optional[Any]


class FakeFlumeApi:
    """Serves canned responses and records the requests it receives."""

    def __init__(self):
        self.responses: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.requests: List[RecordedRequest] = []
        self.delay = 0.0
        self.url = ""
        self.app = web.Application()
        self.app.router.add_route("*", "/{tail:.*}", self._handle)

    def respond(self, method: str, path: str, payload: Any, status: int = 200):
        self.responses[(method, path)] = (status, payload)

    async def _handle(self, request: web.Request) -> web.Response:
        raw = await request.text()
        self.requests.append(
            RecordedRequest(
                method=request.method,
                path=request.path,
                headers=dict(request.headers),
                query=dict(request.query),
                body=json.loads(raw) if raw else None,
            )
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if (request.method, request.path) not in self.responses:
            return web.Response(status=404, text="Not Found")
        status, payload = self.responses[(request.method, request.path)]
        if isinstance(payload, bytes):
            return web.Response(status=status, body=payload, content_type="application/json")
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return web.Response(status=status, text=text, content_type="application/json")


@pytest_asyncio.fixture
async def flume_api():
    """Fake Flume API listening on a local port."""
    api = FakeFlumeApi()
    server = TestServer(api.app)
    await server.start_server()
    api.url = str(server.make_url("")).rstrip("/")
    yield api
    await server.close()


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest_asyncio.fixture
async def client(flume_api, registry):
    """Flume client talking to the fake API."""
    flume = Flume(
        "client-id",
        "client-secret",
        base_url=flume_api.url,
        metrics=ClientMetrics(registry),
        clock=lambda: 1000.0,
    )
    yield flume
    await flume.close_connection()


class RecordingSink:
    """MetricSink test double keeping the last value of every series."""

    def __init__(self):
        self.gauges: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float] = {}
        self.counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float] = {}
        self.increments: List[Tuple[str, Dict[str, str], float]] = []

    def set_gauge(self, name, labels, value):
        self.gauges[(name, tuple(sorted(labels.items())))] = value

    def increment_counter(self, name, labels, delta):
        key = (name, tuple(sorted(labels.items())))
        self.counters[key] = self.counters.get(key, 0.0) + delta
        self.increments.append((name, dict(labels), delta))

    def gauge(self, name, /, **labels):
        return self.gauges.get((name, tuple(sorted(labels.items()))))

    def counter(self, name, /, **labels):
        return self.counters.get((name, tuple(sorted(labels.items()))))


@pytest.fixture
def sink():
    return RecordingSink()


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


def sensor_record(
    sensor_id: str = "sensor-1",
    name: str = "Home",
    tz: str = "America/Los_Angeles",
    last_seen: str = "2024-05-01T11:00:00+00:00",
    battery_level: str = "high",
) -> SensorRecord:
    return SensorRecord(
        id=sensor_id,
        location=Location(name=name, tz=tz),
        product="flume2",
        connected=True,
        battery_level=battery_level,
        last_seen=last_seen,
    )


def make_sensor(**kwargs) -> Sensor:
    return to_sensor(sensor_record(**kwargs))


@dataclass
class ScriptedSession:
    """Stands in for CredentialSession in poller tests.

    ``errors`` maps an operation name to exceptions raised on its next calls.
    """

    user: int = 1234
    records: List[Any] = field(default_factory=list)
    usage: Dict[str, float] = field(default_factory=dict)
    budget_lists: Dict[str, list] = field(default_factory=dict)
    errors: Dict[str, List[BaseException]] = field(default_factory=dict)
    calls: List[str] = field(default_factory=list)
    windows: List[Tuple[str, QueryWindow]] = field(default_factory=list)

    def _maybe_raise(self, operation: str):
        self.calls.append(operation)
        pending = self.errors.get(operation)
        if pending:
            raise pending.pop(0)

    async def user_id(self):
        self._maybe_raise("user_id")
        return self.user

    async def devices(self, user_id):
        self._maybe_raise("devices")
        return list(self.records)

    async def query_usage(self, user_id, sensor, until):
        self._maybe_raise("query_usage")
        self.windows.append(
            (sensor.id, QueryWindow(since=sensor.last_update, until=until.astimezone(sensor.timezone)))
        )
        return self.usage.get(sensor.id, 0.0)

    async def budgets(self, user_id, sensor):
        self._maybe_raise("budgets")
        return self.budget_lists.get(sensor.id, [])


@pytest.fixture
def scripted_session():
    return ScriptedSession(records=[sensor_record()])

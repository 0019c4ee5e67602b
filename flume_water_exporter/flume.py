"""Client for the Flume water API."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable

import aiohttp

from .const import (
    API_URL,
    DEFAULT_REQUEST_TIMEOUT,
    DEVICE_TYPE_BRIDGE,
    DEVICE_TYPE_SENSOR,
    ENDPOINT_BUDGETS,
    ENDPOINT_DEVICES,
    ENDPOINT_ME,
    ENDPOINT_QUERY,
    ENDPOINT_TOKEN,
    QUERY_BUCKET,
    QUERY_OPERATION,
    QUERY_UNITS,
)
from .exceptions import (
    FlumeApplicationError,
    FlumeAuthenticationError,
    FlumeGatewayError,
    FlumeProtocolError,
    FlumeShapeError,
    FlumeTransportError,
)
from .metrics import ClientMetrics
from .models import (
    BridgeRecord,
    Budget,
    BudgetPeriod,
    Credential,
    DeviceRecord,
    Location,
    QueryWindow,
    SensorRecord,
)

_LOGGER = logging.getLogger(__name__)


class Flume:
    """Stateless client for the Flume water API.

    Tokens are passed in by the caller on every call, see
    :class:`~flume_water_exporter.session.CredentialSession` for the
    component that keeps them fresh.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        websession: aiohttp.ClientSession | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        base_url: str = API_URL,
        metrics: ClientMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the Flume client.

        Args:
            client_id: OAuth client id issued by Flume
            client_secret: OAuth client secret issued by Flume
            websession: Optional aiohttp ClientSession. If not provided, one will be created.
            timeout: Connect and read timeout for every request, in seconds
            base_url: Root URL of the API
            metrics: Instruments to record requests, errors and latency in
            clock: Monotonic clock used to stamp issued credentials
        """
        self.base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._websession = websession
        self._own_session = websession is None
        self._timeout = aiohttp.ClientTimeout(total=timeout, connect=timeout)
        self._metrics = metrics or ClientMetrics()
        self._clock = clock

    async def close_connection(self) -> None:
        """Close the connection and clean up resources."""
        if self._own_session and self._websession:
            await self._websession.close()
            self._websession = None

    async def _ensure_session(self) -> None:
        """Ensure a websession exists."""
        if self._websession is None:
            self._websession = aiohttp.ClientSession()
            self._own_session = True

    async def __aenter__(self) -> Flume:
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close_connection()

    async def authenticate(self, username: str, password: str) -> Credential:
        """Obtain a credential with the password grant."""
        body = {
            "grant_type": "password",
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "username": username,
            "password": password,
        }
        data = await self._request("POST", ENDPOINT_TOKEN, "authenticate", payload=body)
        return self._parse_credential(data, "authenticate")

    async def refresh(self, refresh_token: str) -> Credential:
        """Exchange a refresh token for a new credential."""
        body = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        data = await self._request("POST", ENDPOINT_TOKEN, "refresh token", payload=body)
        return self._parse_credential(data, "refresh token")

    async def resolve_identity(self, access_token: str) -> int:
        """Fetch the id of the user owning ``access_token``."""
        data = await self._request("GET", ENDPOINT_ME, "user id", access_token=access_token)
        try:
            user_id = data[0]["id"]
        except (IndexError, KeyError, TypeError) as err:
            raise self._shape_error("user id", f"No user in response: {data!r}") from err
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise self._shape_error("user id", f"Invalid user id {user_id!r}")
        return user_id

    async def list_devices(self, access_token: str, user_id: int) -> list[DeviceRecord]:
        """Fetch every bridge and sensor of the user, with their location."""
        data = await self._request(
            "GET",
            ENDPOINT_DEVICES.format(user_id=user_id),
            "devices",
            access_token=access_token,
            params={"location": "true"},
        )
        try:
            return [self._parse_device(device) for device in data]
        except FlumeShapeError as err:
            raise self._shape_error("devices", str(err)) from err
        except (KeyError, TypeError, ValueError) as err:
            raise self._shape_error("devices", f"Invalid device in response: {err}") from err

    async def query_usage(
        self,
        access_token: str,
        user_id: int,
        sensor_id: str,
        window: QueryWindow,
    ) -> float:
        """Return the liters used by a sensor during ``window``.

        An empty result is zero usage, not an error.
        """
        request_id = window.since_datetime
        body = {
            "queries": [
                {
                    "request_id": request_id,
                    "bucket": QUERY_BUCKET,
                    "since_datetime": window.since_datetime,
                    "until_datetime": window.until_datetime,
                    "operation": QUERY_OPERATION,
                    "units": QUERY_UNITS,
                }
            ]
        }
        _LOGGER.debug("Query for sensor %s: %s", sensor_id, body)
        data = await self._request(
            "POST",
            ENDPOINT_QUERY.format(user_id=user_id, device_id=sensor_id),
            "query",
            access_token=access_token,
            payload=body,
        )
        try:
            samples = data[0][request_id]
            if not isinstance(samples, list):
                raise TypeError(f"expected a list of samples, got {samples!r}")
            return float(sum(float(sample["value"]) for sample in samples))
        except (IndexError, KeyError, TypeError, ValueError) as err:
            raise self._shape_error("query", f"Invalid query result: {err}") from err

    async def list_budgets(self, access_token: str, user_id: int, sensor_id: str) -> list[Budget]:
        """Fetch the budgets configured for a sensor."""
        data = await self._request(
            "GET",
            ENDPOINT_BUDGETS.format(user_id=user_id, device_id=sensor_id),
            "budgets",
            access_token=access_token,
        )
        try:
            return [
                Budget(
                    id=int(budget["id"]),
                    name=str(budget["name"]),
                    period=BudgetPeriod(str(budget["type"]).lower()),
                    limit_volume=float(budget["value"]),
                    thresholds=[int(threshold) for threshold in budget.get("thresholds") or []],
                    actual_volume=float(budget.get("actual") or 0.0),
                )
                for budget in data
            ]
        except (KeyError, TypeError, ValueError) as err:
            raise self._shape_error("budgets", f"Invalid budget in response: {err}") from err

    async def _request(
        self,
        method: str,
        path: str,
        request_name: str,
        access_token: str | None = None,
        payload: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> list[Any]:
        """Send a request and return the ``data`` array of the envelope."""
        await self._ensure_session()
        assert self._websession is not None
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        _LOGGER.debug("%s %s", method, url)
        self._metrics.requests.labels(request_name).inc()
        start = time.perf_counter()
        try:
            async with self._websession.request(
                method,
                url,
                headers=headers,
                json=payload,
                params=params,
                timeout=self._timeout,
            ) as response:
                status = response.status
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            self._metrics.errors.labels(request_name, "request").inc()
            raise FlumeTransportError(f"Failed to connect to {url}: {err!r}") from err
        finally:
            self._metrics.durations.labels(request_name).observe(time.perf_counter() - start)

        _LOGGER.debug("%s %s returned %s: %r", method, url, status, body[:1000])
        return self._parse_envelope(body, status, url, request_name)

    def _parse_envelope(self, body: bytes, status: int, url: str, request_name: str) -> list[Any]:
        """Decode ``{success, code, message, data}``."""
        try:
            envelope = json.loads(body.decode("utf-8"))
        except ValueError as err:
            if status >= 500:
                # Gateway pages from an unreachable upstream are not envelopes
                self._metrics.errors.labels(request_name, "gateway").inc()
                raise FlumeGatewayError(
                    f"{url} returned HTTP {status} without a Flume response", status
                ) from err
            self._metrics.errors.labels(request_name, "deserialize").inc()
            raise FlumeProtocolError(f"Failed to deserialize response from {url}: {err}") from err

        if (
            not isinstance(envelope, dict)
            or not isinstance(envelope.get("success"), bool)
            or not isinstance(envelope.get("data") or [], list)
        ):
            self._metrics.errors.labels(request_name, "deserialize").inc()
            raise FlumeProtocolError(f"Unexpected response from {url}: {body[:200]!r}")

        if not envelope["success"] or status >= 400:
            self._metrics.errors.labels(request_name, "application").inc()
            code = envelope.get("code")
            message = envelope.get("message") or envelope.get("detailed") or f"HTTP {status}"
            if status == 401:
                raise FlumeAuthenticationError(f"{request_name} rejected: {message}", code)
            raise FlumeApplicationError(f"{request_name} failed ({code}): {message}", code)

        return envelope.get("data") or []

    def _parse_credential(self, data: list[Any], request_name: str) -> Credential:
        try:
            token = data[0]
            return Credential(
                access_token=str(token["access_token"]),
                refresh_token=str(token["refresh_token"]),
                expires_in=int(token["expires_in"]),
                issued_at=self._clock(),
            )
        except (IndexError, KeyError, TypeError, ValueError) as err:
            raise self._shape_error(request_name, f"No token in response: {err}") from err

    def _shape_error(self, request_name: str, message: str) -> FlumeShapeError:
        self._metrics.errors.labels(request_name, "shape").inc()
        return FlumeShapeError(message)

    @staticmethod
    def _parse_device(device: dict[str, Any]) -> DeviceRecord:
        """Parse a device record, dispatching on its type tag."""
        device_type = device.get("type")
        location = Flume._parse_location(device.get("location"))
        if device_type == DEVICE_TYPE_BRIDGE:
            return BridgeRecord(
                id=str(device["id"]),
                location=location,
                product=str(device["product"]),
                connected=bool(device["connected"]),
            )
        if device_type == DEVICE_TYPE_SENSOR:
            return SensorRecord(
                id=str(device["id"]),
                location=location,
                product=str(device["product"]),
                connected=bool(device["connected"]),
                battery_level=str(device.get("battery_level") or ""),
                last_seen=str(device["last_seen"]),
            )
        raise FlumeShapeError(f"Unknown device type {device_type!r}")

    @staticmethod
    def _parse_location(location: dict[str, Any] | None) -> Location | None:
        if not location:
            return None
        return Location(name=str(location["name"]), tz=str(location.get("tz") or ""))

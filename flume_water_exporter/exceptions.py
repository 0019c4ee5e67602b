"""Exceptions for the Flume water exporter."""

from __future__ import annotations


class FlumeError(Exception):
    """Base exception for all Flume errors."""


class FlumeTransportError(FlumeError):
    """The request could not be completed (timeout, connect failure, DNS)."""


class FlumeGatewayError(FlumeTransportError):
    """An upstream gateway answered with a 5xx page instead of the API."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class FlumeProtocolError(FlumeError):
    """The response body is not a valid Flume response envelope."""


class FlumeApplicationError(FlumeError):
    """The Flume API answered with ``success`` set to false."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class FlumeAuthenticationError(FlumeApplicationError):
    """The Flume API rejected the credentials."""


class FlumeShapeError(FlumeError):
    """The response envelope does not carry the expected payload."""


class FlumeDomainError(FlumeError):
    """A wire record cannot be turned into a device."""

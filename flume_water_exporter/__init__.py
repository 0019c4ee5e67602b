"""Prometheus exporter for Flume water meters."""

from .exceptions import (
    FlumeApplicationError,
    FlumeAuthenticationError,
    FlumeDomainError,
    FlumeError,
    FlumeGatewayError,
    FlumeProtocolError,
    FlumeShapeError,
    FlumeTransportError,
)
from .flume import Flume
from .models import Bridge, Budget, BudgetPeriod, Credential, Sensor
from .poller import Poller
from .session import CredentialSession

__all__ = [
    "Bridge",
    "Budget",
    "BudgetPeriod",
    "Credential",
    "CredentialSession",
    "Flume",
    "FlumeApplicationError",
    "FlumeAuthenticationError",
    "FlumeDomainError",
    "FlumeError",
    "FlumeGatewayError",
    "FlumeProtocolError",
    "FlumeShapeError",
    "FlumeTransportError",
    "Poller",
    "Sensor",
]

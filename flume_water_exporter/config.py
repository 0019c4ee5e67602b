"""
Configuration loading.

Reads the exporter settings from a YAML file.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from .const import (
    DEFAULT_BIND_ADDRESS,
    DEFAULT_BUDGET_INTERVAL,
    DEFAULT_DEVICE_INTERVAL,
    DEFAULT_QUERY_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
)

REQUIRED_KEYS = ('client_id', 'client_secret', 'username', 'password')
INTERVAL_KEYS = ('budget_interval', 'device_interval', 'query_interval')
ALLOWED_KEYS = set(REQUIRED_KEYS) | set(INTERVAL_KEYS) | {'bind_address', 'request_timeout'}


@dataclass(frozen=True)
class Configuration:
    """Exporter settings, intervals and timeout in seconds."""
    client_id: str
    client_secret: str
    username: str
    password: str
    bind_address: str = DEFAULT_BIND_ADDRESS
    budget_interval: int = DEFAULT_BUDGET_INTERVAL
    device_interval: int = DEFAULT_DEVICE_INTERVAL
    query_interval: int = DEFAULT_QUERY_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self):
        """Validate intervals, timeout and bind address."""
        for key in INTERVAL_KEYS:
            if getattr(self, key) <= 0:
                raise ValueError(f"{key} must be > 0")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        parse_bind_address(self.bind_address)

    @property
    def bind_host(self) -> str:
        return parse_bind_address(self.bind_address)[0]

    @property
    def bind_port(self) -> int:
        return parse_bind_address(self.bind_address)[1]


def parse_bind_address(bind_address: str) -> Tuple[str, int]:
    """Split ``host:port`` into its parts.

    Raises:
        ValueError: If the address is not ``host:port`` with a valid port
    """
    host, separator, port = bind_address.rpartition(':')
    host = host.strip('[]')
    if not separator or not host or not port.isdigit():
        raise ValueError(f"Can't parse listen address {bind_address!r}, expected host:port")
    port_number = int(port)
    if not 0 < port_number < 65536:
        raise ValueError(f"Port out of range in listen address {bind_address!r}")
    return host, port_number


def load_configuration(path: str) -> Configuration:
    """Load and validate the exporter configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated Configuration object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}") from e

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - ALLOWED_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values: Dict[str, Any] = {}
    for key in REQUIRED_KEYS:
        if key not in raw_config:
            raise ValueError(f"Missing required '{key}'")
        value = raw_config[key]
        if not isinstance(value, str) or not value:
            raise ValueError(f"'{key}' must be a non-empty string")
        values[key] = value

    for key in INTERVAL_KEYS:
        if key in raw_config:
            value = raw_config[key]
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"'{key}' must be a positive number of seconds")
            values[key] = value

    if 'request_timeout' in raw_config:
        timeout = raw_config['request_timeout']
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("'request_timeout' must be a positive number of seconds")
        values['request_timeout'] = float(timeout)

    if 'bind_address' in raw_config:
        bind_address = raw_config['bind_address']
        if not isinstance(bind_address, str):
            raise ValueError("'bind_address' must be a string")
        values['bind_address'] = bind_address

    return Configuration(**values)

"""Configuration management for wagate."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from wagate.errors import ConfigError

DRAIN_FAILURE_POLICIES = ("drop", "dead_letter")


@dataclass
class ConnectionConfig:
    """Session lifecycle and reconnect configuration."""

    reconnect_delay: float = 5.0  # after a non-terminal close (seconds)
    pairing_reconnect_delay: float = 10.0  # after pairing attempts run out
    failed_start_delay: float = 10.0  # after the initial start fails
    max_reconnect_delay: float = 60.0
    backoff_multiplier: float = 1.5
    max_pairing_attempts: int = 3


@dataclass
class QueueConfig:
    """Outbound queue configuration."""

    pacing_interval: float = 1.0  # pause between drained messages
    drain_delay: float = 2.0  # settle time after open before draining
    warning_depth: int = 100  # depth above which health is degraded
    failure_policy: str = "drop"  # "drop" or "dead_letter"
    dead_letter_limit: int = 100


@dataclass
class StatusServerConfig:
    """Status/pairing HTTP surface configuration."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8790


@dataclass
class TransportConfig:
    """Transport factory configuration.

    factory is a "package.module:callable" reference; the callable receives
    options as keyword arguments and returns a Transport.
    """

    factory: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class Config:
    """Daemon configuration."""

    log_level: str = "INFO"
    log_file: str | None = None
    credentials_dir: str = "~/.config/wagate/credentials"
    lock_file: str = "~/.config/wagate/wagate.lock"
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    status_server: StatusServerConfig = field(default_factory=StatusServerConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "wagate" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        return yaml.safe_load(content)
    except yaml.YAMLError:
        return None


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a config section, treating an empty "name:" key as absent."""
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"Invalid config section {name!r}: expected a mapping")
    return section


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load configuration from file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Config object with values from file or defaults.

    Raises:
        ConfigError: If a value is out of its allowed set.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)

    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file {config_path}: expected a mapping")

    # Parse connection section
    connection_data = _section(data, "connection")
    connection_config = ConnectionConfig(
        reconnect_delay=connection_data.get(
            "reconnect_delay", ConnectionConfig.reconnect_delay
        ),
        pairing_reconnect_delay=connection_data.get(
            "pairing_reconnect_delay", ConnectionConfig.pairing_reconnect_delay
        ),
        failed_start_delay=connection_data.get(
            "failed_start_delay", ConnectionConfig.failed_start_delay
        ),
        max_reconnect_delay=connection_data.get(
            "max_reconnect_delay", ConnectionConfig.max_reconnect_delay
        ),
        backoff_multiplier=connection_data.get(
            "backoff_multiplier", ConnectionConfig.backoff_multiplier
        ),
        max_pairing_attempts=connection_data.get(
            "max_pairing_attempts", ConnectionConfig.max_pairing_attempts
        ),
    )

    # Parse queue section
    queue_data = _section(data, "queue")
    queue_config = QueueConfig(
        pacing_interval=queue_data.get("pacing_interval", QueueConfig.pacing_interval),
        drain_delay=queue_data.get("drain_delay", QueueConfig.drain_delay),
        warning_depth=queue_data.get("warning_depth", QueueConfig.warning_depth),
        failure_policy=queue_data.get("failure_policy", QueueConfig.failure_policy),
        dead_letter_limit=queue_data.get(
            "dead_letter_limit", QueueConfig.dead_letter_limit
        ),
    )
    if queue_config.failure_policy not in DRAIN_FAILURE_POLICIES:
        raise ConfigError(
            f"Invalid queue.failure_policy: {queue_config.failure_policy!r} "
            f"(expected one of {', '.join(DRAIN_FAILURE_POLICIES)})"
        )

    # Parse status_server section
    status_data = _section(data, "status_server")
    status_config = StatusServerConfig(
        enabled=status_data.get("enabled", StatusServerConfig.enabled),
        host=status_data.get("host", StatusServerConfig.host),
        port=status_data.get("port", StatusServerConfig.port),
    )

    # Parse transport section
    transport_data = _section(data, "transport")
    transport_config = TransportConfig(
        factory=transport_data.get("factory"),
        options=transport_data.get("options") or {},
    )

    return Config(
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        credentials_dir=data.get("credentials_dir", Config.credentials_dir),
        lock_file=data.get("lock_file", Config.lock_file),
        connection=connection_config,
        queue=queue_config,
        status_server=status_config,
        transport=transport_config,
    )

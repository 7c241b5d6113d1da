"""Configuration loading for fitsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .sync.retry import RetryConfiguration


@dataclass
class NodeConfig:
    name: str = "fitsync-device"


@dataclass
class RemoteConfig:
    url: str = "http://localhost:8700"
    timeout_seconds: float = 30.0
    api_token: str | None = None


@dataclass
class RetrySettings:
    """Backoff settings shared by live retries and queued replays."""

    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    jitter_factor: float = 0.2

    def to_configuration(self) -> RetryConfiguration:
        return RetryConfiguration(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_seconds,
            max_delay=self.max_delay_seconds,
            jitter_factor=self.jitter_factor,
        )


@dataclass
class StorageConfig:
    """Where local entities and the pending operation queue live."""

    db_path: str = "~/.fitsync/fitsync.db"
    queue_key: str = "pending_sync_operations"


@dataclass
class LoopConfig:
    enabled: bool = True
    interval_seconds: float = 30.0


@dataclass
class DashboardConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    retry: RetrySettings = field(default_factory=RetrySettings)
    storage: StorageConfig = field(default_factory=StorageConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with FITSYNC_ prefix."""
    return os.environ.get(f"FITSYNC_{key}", default)


def _as_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Node overrides
    if name := _get_env("NODE_NAME"):
        config.node.name = name

    # Remote store overrides
    if url := _get_env("REMOTE_URL"):
        config.remote.url = url
    if timeout := _get_env("REMOTE_TIMEOUT"):
        config.remote.timeout_seconds = float(timeout)
    if token := _get_env("REMOTE_API_TOKEN"):
        config.remote.api_token = token

    # Retry overrides
    if max_attempts := _get_env("RETRY_MAX_ATTEMPTS"):
        config.retry.max_attempts = int(max_attempts)
    if base_delay := _get_env("RETRY_BASE_DELAY"):
        config.retry.base_delay_seconds = float(base_delay)
    if max_delay := _get_env("RETRY_MAX_DELAY"):
        config.retry.max_delay_seconds = float(max_delay)
    if jitter := _get_env("RETRY_JITTER"):
        config.retry.jitter_factor = float(jitter)

    # Storage overrides
    if db_path := _get_env("DB_PATH"):
        config.storage.db_path = db_path

    # Loop overrides
    if loop_enabled := _get_env("LOOP_ENABLED"):
        config.loop.enabled = _as_bool(loop_enabled)
    if interval := _get_env("LOOP_INTERVAL"):
        config.loop.interval_seconds = float(interval)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.

    Raises:
        ValueError: If the retry settings do not form a valid configuration.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "node" in data:
                node_data = data["node"]
                config.node = NodeConfig(
                    name=node_data.get("name", config.node.name),
                )

            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    url=remote_data.get("url", config.remote.url),
                    timeout_seconds=remote_data.get(
                        "timeout_seconds", config.remote.timeout_seconds
                    ),
                    api_token=remote_data.get("api_token"),
                )

            if "retry" in data:
                retry_data = data["retry"]
                config.retry = RetrySettings(
                    max_attempts=retry_data.get("max_attempts", config.retry.max_attempts),
                    base_delay_seconds=retry_data.get(
                        "base_delay_seconds", config.retry.base_delay_seconds
                    ),
                    max_delay_seconds=retry_data.get(
                        "max_delay_seconds", config.retry.max_delay_seconds
                    ),
                    jitter_factor=retry_data.get("jitter_factor", config.retry.jitter_factor),
                )

            if "storage" in data:
                storage_data = data["storage"]
                config.storage = StorageConfig(
                    db_path=storage_data.get("db_path", config.storage.db_path),
                    queue_key=storage_data.get("queue_key", config.storage.queue_key),
                )

            if "loop" in data:
                loop_data = data["loop"]
                config.loop = LoopConfig(
                    enabled=loop_data.get("enabled", config.loop.enabled),
                    interval_seconds=loop_data.get(
                        "interval_seconds", config.loop.interval_seconds
                    ),
                )

            if "dashboard" in data:
                dash_data = data["dashboard"]
                config.dashboard = DashboardConfig(
                    host=dash_data.get("host", config.dashboard.host),
                    port=dash_data.get("port", config.dashboard.port),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    # Fail early on invalid retry settings
    config.retry.to_configuration()

    return config

"""Service settings loaded from environment variables."""

import dataclasses
import os
from typing import Any, Optional


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration.

    Attributes:
        cache_path: Location of the JSON snapshot of the stock cache.
        sync_interval: Seconds between two reconciliation passes.
        sync_enabled: Whether the background reconciliation task is started.
        sync_stop_timeout: Seconds to wait for an in-flight pass on shutdown.
        warehouse_url: Base URL of the warehouse system. When unset, an
            in-process simulated warehouse is used instead.
        warehouse_timeout: Total timeout for a single warehouse request.
        simulated_latency: Per-call delay of the simulated warehouse.
        log_level: Root logger level when running as a script.
    """

    cache_path: str = "stockCache.json"
    sync_interval: float = 2.5
    sync_enabled: bool = True
    sync_stop_timeout: float = 5.0
    warehouse_url: Optional[str] = None
    warehouse_timeout: float = 5.0
    simulated_latency: float = 0.1
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.sync_interval <= 0:
            raise ValueError("sync_interval must be positive")
        if self.sync_stop_timeout < 0:
            raise ValueError("sync_stop_timeout must not be negative")
        if self.warehouse_timeout <= 0:
            raise ValueError("warehouse_timeout must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> "Settings":
        """Builds settings from the environment; keyword arguments take precedence."""
        env = os.environ
        values: dict[str, Any] = {}

        path = env.get("STOCK_CACHE_PATH")
        if path:
            values["cache_path"] = path

        interval = env.get("STOCK_SYNC_INTERVAL_SECONDS")
        if interval is not None:
            values["sync_interval"] = float(interval)

        values["sync_enabled"] = _env_bool(env.get("STOCK_SYNC_ENABLED"), True)

        stop_timeout = env.get("STOCK_SYNC_STOP_TIMEOUT_SECONDS")
        if stop_timeout is not None:
            values["sync_stop_timeout"] = float(stop_timeout)

        url = env.get("WAREHOUSE_URL")
        if url:
            values["warehouse_url"] = url.rstrip("/")

        timeout = env.get("WAREHOUSE_TIMEOUT_SECONDS")
        if timeout is not None:
            values["warehouse_timeout"] = float(timeout)

        latency = env.get("WAREHOUSE_SIMULATED_LATENCY_SECONDS")
        if latency is not None:
            values["simulated_latency"] = float(latency)

        values["log_level"] = env.get("LOG_LEVEL", "INFO").upper()

        values.update(overrides)
        return cls(**values)

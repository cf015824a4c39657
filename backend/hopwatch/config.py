"""
Configuration settings for the hopwatch backend.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Hopwatch API"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./hopwatch.db"
    database_connect_timeout: int = 2  # seconds
    database_statement_timeout_ms: int = 30000

    # Anomaly detection
    high_latency_threshold_ms: float = 200.0
    packet_loss_threshold_pct: float = 3.0
    logging_enabled: bool = True

    # Hop statistics aggregation
    flush_interval_seconds: int = 60
    flush_deadline_seconds: int = 45
    data_retention_days: int = 30

    # Traceroute invocation
    traceroute_max_hops: int = 15
    traceroute_wait_seconds: int = 2
    traceroute_timeout_seconds: int = 60

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", env_prefix="HOPWATCH_")


# Global settings instance
settings = Settings()


@dataclass(frozen=True)
class RuntimeSnapshot:
    """Point-in-time copy of the runtime options."""

    high_latency_threshold_ms: float
    packet_loss_threshold_pct: float
    logging_enabled: bool
    persistence_available: bool


class RuntimeConfig:
    """Options that operators may change while the service is running.

    All reads and writes go through the same lock, so a traceroute in flight
    sees a consistent set of thresholds.
    """

    def __init__(
        self,
        high_latency_threshold_ms: float = settings.high_latency_threshold_ms,
        packet_loss_threshold_pct: float = settings.packet_loss_threshold_pct,
        logging_enabled: bool = settings.logging_enabled,
    ):
        self._lock = threading.Lock()
        self._high_latency_threshold_ms = high_latency_threshold_ms
        self._packet_loss_threshold_pct = packet_loss_threshold_pct
        self._logging_enabled = logging_enabled
        self._persistence_available = True

    def snapshot(self) -> RuntimeSnapshot:
        with self._lock:
            return RuntimeSnapshot(
                high_latency_threshold_ms=self._high_latency_threshold_ms,
                packet_loss_threshold_pct=self._packet_loss_threshold_pct,
                logging_enabled=self._logging_enabled,
                persistence_available=self._persistence_available,
            )

    @property
    def logging_enabled(self) -> bool:
        with self._lock:
            return self._logging_enabled

    @property
    def persistence_available(self) -> bool:
        with self._lock:
            return self._persistence_available

    def set_logging_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._logging_enabled = enabled

    def set_persistence_available(self, available: bool) -> bool:
        """Set the degraded-mode flag.

        Returns:
            True if the flag changed
        """
        with self._lock:
            changed = self._persistence_available != available
            self._persistence_available = available
            return changed

    def update_thresholds(
        self,
        high_latency_threshold_ms: Optional[float] = None,
        packet_loss_threshold_pct: Optional[float] = None,
    ) -> None:
        with self._lock:
            if high_latency_threshold_ms is not None:
                self._high_latency_threshold_ms = high_latency_threshold_ms
            if packet_loss_threshold_pct is not None:
                self._packet_loss_threshold_pct = packet_loss_threshold_pct


_runtime_config: Optional[RuntimeConfig] = None


def get_runtime_config() -> RuntimeConfig:
    """Get the process-wide runtime configuration.

    Returns:
        RuntimeConfig instance
    """
    global _runtime_config
    if _runtime_config is None:
        _runtime_config = RuntimeConfig()
    return _runtime_config

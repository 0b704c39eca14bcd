"""
Application settings.

Provides type-safe configuration sections with defaults taken from configs.
"""

from dataclasses import dataclass, field

from configs import (
    BAUD_RATE,
    COMMAND_TIMEOUT_MS,
    DEFAULT_COUNTRY_CODE,
    DEVICE_ID,
    ENABLE_SETTLE_MS,
    LOKI_URL,
    POLL_INTERVAL_MS,
    REDIS_HOST,
    REDIS_PORT,
    RESET_BASE_DELAY_MS,
    RESET_COOLDOWN_S,
    RESET_ENABLE_SETTLE_MS,
    SERIAL_PORT,
    STABILIZATION_MAX_MS,
    STABILIZATION_STEP_MS,
    START_BASE_DELAY_MS,
    START_MAX_RETRIES,
    WS_URL,
)


# =============================================================================
# Configuration Classes
# =============================================================================


@dataclass(frozen=True)
class RedisSettings:
    """Redis connection settings."""

    host: str = REDIS_HOST
    port: int = REDIS_PORT
    decode_responses: bool = True


@dataclass(frozen=True)
class SerialPortSettings:
    """Serial port configuration."""

    port: str = SERIAL_PORT
    baudrate: int = BAUD_RATE


@dataclass(frozen=True)
class ServiceSettings:
    """External service URLs."""

    loki_url: str | None = LOKI_URL
    websocket_url: str = WS_URL


@dataclass(frozen=True)
class ControlSettings:
    """Session control channel settings."""

    command_channel: str = "cash_reader_commands"
    notifier_drain_timeout_s: float = 5.0

    @property
    def response_channel(self) -> str:
        """Get response channel name."""
        return f"{self.command_channel}_response"


@dataclass(frozen=True)
class NV200Settings:
    """NV200 note validator settings."""

    device_id: int = DEVICE_ID
    timeout_ms: int = COMMAND_TIMEOUT_MS
    poll_interval_ms: int = POLL_INTERVAL_MS
    country_code: str = DEFAULT_COUNTRY_CODE

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000


@dataclass(frozen=True)
class RecoverySettings:
    """Start/reset retry policy."""

    max_retries: int = START_MAX_RETRIES
    start_base_delay_ms: int = START_BASE_DELAY_MS
    reset_base_delay_ms: int = RESET_BASE_DELAY_MS
    enable_settle_ms: int = ENABLE_SETTLE_MS
    reset_enable_settle_ms: int = RESET_ENABLE_SETTLE_MS
    reset_cooldown_s: float = RESET_COOLDOWN_S
    stabilization_step_ms: int = STABILIZATION_STEP_MS
    stabilization_max_ms: int = STABILIZATION_MAX_MS


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """
    Main application settings.

    Aggregates all configuration sections.
    """

    redis: RedisSettings = field(default_factory=RedisSettings)
    serial: SerialPortSettings = field(default_factory=SerialPortSettings)
    services: ServiceSettings = field(default_factory=ServiceSettings)
    control: ControlSettings = field(default_factory=ControlSettings)
    nv200: NV200Settings = field(default_factory=NV200Settings)
    recovery: RecoverySettings = field(default_factory=RecoverySettings)


# =============================================================================
# Settings Singleton
# =============================================================================


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

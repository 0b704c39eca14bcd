"""
Infrastructure layer - Configuration.

Contains:
- Typed settings sections built from configs
"""

from .settings import (
    ControlSettings,
    NV200Settings,
    RecoverySettings,
    RedisSettings,
    SerialPortSettings,
    ServiceSettings,
    Settings,
    get_settings,
)


__all__ = [
    "ControlSettings",
    "NV200Settings",
    "RecoverySettings",
    "RedisSettings",
    "SerialPortSettings",
    "ServiceSettings",
    "Settings",
    "get_settings",
]

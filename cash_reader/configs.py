"""
Configuration module for the cash reader.

This module provides centralized configuration for the NV200 note reader
and the services around it: serial port, WebSocket sink, Loki and Redis.
Values that the deployment sets per kiosk can be overridden from the
environment.
"""

import os
from typing import Final, Optional


# =============================================================================
# System Configuration
# =============================================================================

APP_NAME: Final[str] = "cash_reader"
LOG_DIR: Final[str] = os.environ.get("CASH_READER_LOG_DIR", "logs")


# =============================================================================
# Redis Configuration
# =============================================================================

REDIS_HOST: Final[str] = os.environ.get("REDIS_HOST", "localhost")
REDIS_PORT: Final[int] = int(os.environ.get("REDIS_PORT", "6379"))


# =============================================================================
# External Services Configuration
# =============================================================================

# Loki is optional; no remote handler is attached when this is empty.
LOKI_URL: Final[Optional[str]] = os.environ.get("LOKI_URL") or None
WS_URL: Final[str] = os.environ.get("WS_URL", "wss://localhost:3001/ws")
WS_EVENT_NAME: Final[str] = "cashreader"


# =============================================================================
# Serial Port Configuration
# =============================================================================

SERIAL_PORT: Final[str] = os.environ.get("SERIAL_PORT", "/dev/ttyUSB0")
BAUD_RATE: Final[int] = int(os.environ.get("BAUD_RATE", "9600"))


# =============================================================================
# NV200 Configuration
# =============================================================================

DEFAULT_COUNTRY_CODE: Final[str] = "EUR"
DEVICE_ID: Final[int] = 0x00
COMMAND_TIMEOUT_MS: Final[int] = 3000
POLL_INTERVAL_MS: Final[int] = 1000

# Note values per country in minor units, ordered by channel (channel 1 first).
CURRENCY_DENOMINATIONS: Final[dict[str, list[tuple[int, str]]]] = {
    "EUR": [
        (500, "5 EUR"),
        (1000, "10 EUR"),
        (2000, "20 EUR"),
        (5000, "50 EUR"),
        (10000, "100 EUR"),
        (20000, "200 EUR"),
        (50000, "500 EUR"),
    ],
}


# =============================================================================
# Recovery Configuration
# =============================================================================

START_MAX_RETRIES: Final[int] = 3
START_BASE_DELAY_MS: Final[int] = 1000
RESET_BASE_DELAY_MS: Final[int] = 2000
ENABLE_SETTLE_MS: Final[int] = 2000
RESET_ENABLE_SETTLE_MS: Final[int] = 3000
RESET_COOLDOWN_S: Final[float] = 30.0
STABILIZATION_STEP_MS: Final[int] = 5000
STABILIZATION_MAX_MS: Final[int] = 20000

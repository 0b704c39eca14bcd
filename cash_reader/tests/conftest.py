"""
Pytest configuration for cash reader tests.

This conftest.py adds the cash_reader directory to sys.path so that
tests can import modules the way the service does, and provides
in-memory fakes for the transport and the event sink.
"""

import sys
from pathlib import Path
from typing import Any, Optional, Union

import pytest


# Add the cash_reader directory to sys.path for proper imports
cash_reader_path = Path(__file__).parent.parent
if str(cash_reader_path) not in sys.path:
    sys.path.insert(0, str(cash_reader_path))

from core.exceptions import DeviceTimeoutError, NotifierDeliveryError  # noqa: E402
from core.value_objects import CommandResult, DeviceEvent  # noqa: E402
from infrastructure.settings import (  # noqa: E402
    NV200Settings,
    RecoverySettings,
    Settings,
)


PollStep = Union[list[DeviceEvent], Exception]


class FakeTransport:
    """
    In-memory Transport.

    POLL answers come from poll_script in order (an empty list once the
    script is used up); other commands answer OK unless overridden in
    responses.
    """

    def __init__(
        self,
        poll_script: Optional[list[PollStep]] = None,
        open_failures: int = 0,
        open_error: Optional[Exception] = None,
    ) -> None:
        self.poll_script: list[PollStep] = list(poll_script or [])
        self.open_failures = open_failures
        self.open_error = open_error
        self.responses: dict[str, Union[CommandResult, Exception]] = {}
        self.calls: list[tuple[str, Optional[dict[str, Any]]]] = []
        self.open_count = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self, port: str, baudrate: int) -> None:
        self.open_count += 1
        self.calls.append(("OPEN", {"port": port, "baudrate": baudrate}))
        if self.open_failures > 0:
            self.open_failures -= 1
            raise self.open_error or DeviceTimeoutError("No response to SYNC", device_name="nv200")
        self._open = True

    async def command(self, name: str, params: Optional[dict[str, Any]] = None) -> CommandResult:
        self.calls.append((name, params))

        if name == "POLL":
            step = self.poll_script.pop(0) if self.poll_script else []
            if isinstance(step, Exception):
                raise step
            return CommandResult(command=name, status="OK", info=list(step))

        response = self.responses.get(name)
        if isinstance(response, Exception):
            raise response
        if response is not None:
            return response

        if name == "GET_SERIAL_NUMBER":
            return CommandResult(command=name, status="OK", info={"serial_number": 12345678})
        if name == "GET_DENOMINATION_ROUTE":
            return CommandResult(command=name, status="OK", info={"route": "cashbox"})
        return CommandResult(command=name, status="OK")

    async def close(self) -> None:
        self.calls.append(("CLOSE", None))
        self._open = False

    def count(self, name: str) -> int:
        """Number of times a command was issued."""
        return sum(1 for call, _ in self.calls if call == name)

    @property
    def names(self) -> list[str]:
        return [call for call, _ in self.calls]


class FakeSink:
    """EventSink that records deliveries; fails the first fail_first sends."""

    def __init__(self, fail_first: int = 0) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.fail_first = fail_first

    async def send(self, event: str, data: dict[str, Any]) -> None:
        if self.fail_first > 0:
            self.fail_first -= 1
            raise NotifierDeliveryError("sink unavailable")
        self.sent.append((event, data))

    @property
    def event_names(self) -> list[str]:
        return [data["event_name"] for _, data in self.sent]


def event(name: str, channel: Optional[int] = None) -> DeviceEvent:
    """Build a device event."""
    return DeviceEvent(name=name, channel=channel)


@pytest.fixture
def transport():
    """Fresh fake transport."""
    return FakeTransport()


@pytest.fixture
def sink():
    """Recording event sink."""
    return FakeSink()


@pytest.fixture
def fast_settings():
    """Settings with a short poll interval and no recovery delays."""
    return Settings(
        nv200=NV200Settings(poll_interval_ms=10, timeout_ms=50),
        recovery=RecoverySettings(
            start_base_delay_ms=0,
            reset_base_delay_ms=0,
            enable_settle_ms=0,
            reset_enable_settle_ms=0,
            stabilization_step_ms=0,
            stabilization_max_ms=0,
        ),
    )


@pytest.fixture
def make_event():
    """Factory for device events."""
    return event


@pytest.fixture
def transport_factory():
    """FakeTransport class, for tests that need several or scripted ones."""
    return FakeTransport


@pytest.fixture
def sink_factory():
    """FakeSink class."""
    return FakeSink

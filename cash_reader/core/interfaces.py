"""
Interfaces (Protocols) for the cash reader.

Defines the contracts at the edges of the session core using
Python's Protocol for structural subtyping (duck typing with type hints).
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from .value_objects import CommandResult


@runtime_checkable
class Transport(Protocol):
    """
    Opaque command/response channel to the note validator.

    The session core never builds or decodes wire frames itself.
    """

    async def open(self, port: str, baudrate: int) -> None:
        """Open the channel. Raises on failure."""
        ...

    async def command(
        self,
        name: str,
        params: Optional[dict[str, Any]] = None,
    ) -> CommandResult:
        """
        Send one command and await one response.

        Raises:
            DeviceTimeoutError: No response within the timeout.
            DeviceProtocolError: Malformed response.
        """
        ...

    async def close(self) -> None:
        """Close the channel."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if the channel is open."""
        ...


@runtime_checkable
class EventSink(Protocol):
    """Outbound destination for session notifications."""

    async def send(self, event: str, data: dict[str, Any]) -> None:
        """
        Deliver one notification.

        Raises:
            Exception: Any delivery failure; callers treat it as non-fatal.
        """
        ...

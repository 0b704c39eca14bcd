"""
Custom exceptions for the cash reader.

Provides a hierarchy of typed exceptions for better error handling
and more informative error messages.
"""

from typing import Any, Optional


class CashReaderError(Exception):
    """Base exception for all cash reader errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            code: Optional error code for programmatic handling.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Device Errors
# =============================================================================


class DeviceError(CashReaderError):
    """Base exception for device-related errors."""

    def __init__(
        self,
        message: str,
        device_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.device_name = device_name
        if device_name:
            self.details["device"] = device_name


class DeviceTimeoutError(DeviceError):
    """No response from the device within the command timeout."""

    pass


class DeviceProtocolError(DeviceError):
    """Malformed response or a response status other than OK."""

    def __init__(
        self,
        message: str,
        status: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status = status
        if status:
            self.details["status"] = status


class DeviceNotReadyError(DeviceError):
    """Command issued before the device was opened/enabled."""

    pass


class DeviceStartFailedError(DeviceError):
    """Device could not be started; all attempts exhausted (device unreachable)."""

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.details["attempts"] = attempts


class DeviceBusyError(DeviceError):
    """Another start/stop operation is in progress."""

    pass


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(CashReaderError):
    """Base exception for session lifecycle errors."""

    pass


class SessionAlreadyRunningError(SessionError):
    """A cash session is already running."""

    pass


class SessionNotRunningError(SessionError):
    """No cash session is running."""

    pass


# =============================================================================
# Notifier Errors
# =============================================================================


class NotifierDeliveryError(CashReaderError):
    """An event could not be delivered to the sink. Never fatal."""

    pass

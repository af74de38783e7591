"""Unified exception hierarchy for hometrack.

Every failure raised by the sync engine inherits from HometrackError so that
the client shell can handle them uniformly (show a toast, log, retry).

Exception Hierarchy:
    HometrackError (base)
    ├── ConfigurationError - Configuration and settings issues
    ├── StorageError - Local store read/write failures
    ├── RemoteError - Remote service failures
    │   ├── RemoteCallError - A remote call raised or returned an error
    │   └── SessionUnavailableError - No usable session handle
    ├── SavedLocallyError - Mutation kept locally, remote write failed
    └── SyncError - Queue drain problems (unknown item type, bad payload)

Usage:
    from hometrack.errors import SavedLocallyError

    try:
        await client.add_payment(...)
    except SavedLocallyError as e:
        notify_info(e.message)
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for hometrack errors."""

    # Configuration errors (CFG_*)
    CFG_INVALID = "CFG_INVALID"
    CFG_MISSING = "CFG_MISSING"

    # Local storage errors (STO_*)
    STO_READ_FAILED = "STO_READ_FAILED"
    STO_WRITE_FAILED = "STO_WRITE_FAILED"
    STO_CORRUPTED = "STO_CORRUPTED"

    # Remote errors (RMT_*)
    RMT_CALL_FAILED = "RMT_CALL_FAILED"
    RMT_TIMEOUT = "RMT_TIMEOUT"
    RMT_SESSION_UNAVAILABLE = "RMT_SESSION_UNAVAILABLE"
    RMT_SAVED_LOCALLY = "RMT_SAVED_LOCALLY"

    # Sync errors (SYN_*)
    SYN_UNKNOWN_OPERATION = "SYN_UNKNOWN_OPERATION"
    SYN_INVALID_PAYLOAD = "SYN_INVALID_PAYLOAD"

    # Generic errors
    UNKNOWN = "UNKNOWN"


class HometrackError(Exception):
    """Base exception for all hometrack errors.

    Attributes:
        message: Human-readable error message.
        code: Machine-readable error code from ErrorCode enum.
        details: Optional additional context about the error.
        cause: Optional original exception that caused this error.
    """

    default_message: str = "An error occurred"
    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize a hometrack error.

        Args:
            message: Human-readable error message.
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        self.cause = cause

        super().__init__(self.message)

        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        parts = [f"{self.__class__.__name__}({self.message!r}"]
        if self.code != self.default_code:
            parts.append(f", code={self.code.value!r}")
        if self.details:
            parts.append(f", details={self.details!r}")
        if self.cause:
            parts.append(f", cause={self.cause!r}")
        parts.append(")")
        return "".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a dictionary suitable for display or logging.

        Returns:
            Dictionary with error, code, and detail fields.
        """
        result: dict[str, Any] = {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "detail": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(HometrackError):
    """Raised for configuration and settings issues."""

    default_message = "Configuration error"
    default_code = ErrorCode.CFG_INVALID

    def __init__(
        self,
        message: str | None = None,
        *,
        config_key: str | None = None,
        config_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        if config_path:
            details["config_path"] = config_path
        super().__init__(message, code=code, details=details, cause=cause)


class StorageError(HometrackError):
    """Raised by storage backends when a key cannot be read or written.

    The LocalStore catches these and degrades to in-memory behavior, so
    callers of the store never see them.
    """

    default_message = "Local storage error"
    default_code = ErrorCode.STO_WRITE_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        key: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(message, code=code, details=details, cause=cause)


class RemoteError(HometrackError):
    """Base class for remote service failures."""

    default_message = "Remote service error"
    default_code = ErrorCode.RMT_CALL_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        operation: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, code=code, details=details, cause=cause)


class RemoteCallError(RemoteError):
    """Raised when a remote operation fails in transport or in the service.

    Examples:
        - Connection refused / DNS failure
        - Read timeout
        - Non-2xx response from the service
    """

    default_message = "Remote call failed"
    default_code = ErrorCode.RMT_CALL_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        operation: str | None = None,
        status_code: int | None = None,
        timeout: bool = False,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        if timeout:
            code = code or ErrorCode.RMT_TIMEOUT
        super().__init__(message, operation=operation, code=code, details=details, cause=cause)


class SessionUnavailableError(RemoteError):
    """Raised when a remote call is attempted without a ready session."""

    default_message = "Remote session is not ready"
    default_code = ErrorCode.RMT_SESSION_UNAVAILABLE


class SavedLocallyError(HometrackError):
    """Raised when a mutation could not reach the remote service.

    The change has been written to the local store and queued, so the caller
    should present this as informational rather than as a failure.
    """

    default_message = (
        "Backend error. Changes saved locally and will sync when connection is restored."
    )
    default_code = ErrorCode.RMT_SAVED_LOCALLY

    def __init__(
        self,
        message: str | None = None,
        *,
        operation: str | None = None,
        queue_item_id: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        if queue_item_id:
            details["queue_item_id"] = queue_item_id
        super().__init__(message, code=code, details=details, cause=cause)


class SyncError(HometrackError):
    """Raised while dispatching a queued mutation."""

    default_message = "Sync error"
    default_code = ErrorCode.SYN_INVALID_PAYLOAD


# Convenience factories


def saved_locally(operation: str, cause: Exception, queue_item_id: str | None = None) -> SavedLocallyError:
    """Create the error raised when a mutation fell back to the queue.

    Args:
        operation: Queue operation type (e.g. "add_payment").
        cause: The remote failure.
        queue_item_id: Id of the queue item holding the mutation.

    Returns:
        SavedLocallyError with a message naming the remote failure.
    """
    noun = "Payment" if operation == "add_payment" else "Changes"
    return SavedLocallyError(
        f"Backend error: {cause}. {noun} saved locally and will sync when connection is restored.",
        operation=operation,
        queue_item_id=queue_item_id,
        cause=cause,
    )


def unknown_operation(op_type: str) -> SyncError:
    """Create an error for a queue item with an unrecognized type."""
    return SyncError(
        f"Unknown sync operation type: {op_type}",
        code=ErrorCode.SYN_UNKNOWN_OPERATION,
        details={"op_type": op_type},
    )

"""
Domain Exceptions - error taxonomy for device communication and sync cycles.

Device API errors are never raised out of the client for expected failure
modes; they travel inside an ApiResult so the orchestrator can turn them
into partial results.
"""
from typing import Any, Dict, Optional


class DomainException(Exception):
    """
    Base exception for all engine errors.

    All engine exceptions inherit from this class to allow for consistent
    error handling and serialization towards the presentation layer.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details
        }


class DeviceApiError(DomainException):
    """Base class for failures talking to the device REST endpoints."""

    def __init__(
        self,
        endpoint: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.endpoint = endpoint
        merged = {'endpoint': endpoint}
        merged.update(details or {})
        super().__init__(message=message, code=code, details=merged)


class DeviceTimeoutError(DeviceApiError):
    """Raised when a device call exceeds its hard timeout."""

    def __init__(self, endpoint: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(
            endpoint=endpoint,
            message=f"Request to {endpoint} timed out after {timeout_ms}ms",
            code='DEVICE_TIMEOUT',
            details={'timeout_ms': timeout_ms}
        )


class DeviceUnreachableError(DeviceApiError):
    """Raised when the device cannot be reached at the transport level."""

    def __init__(self, endpoint: str, reason: Optional[str] = None):
        msg = f"Device unreachable for {endpoint}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(
            endpoint=endpoint,
            message=msg,
            code='DEVICE_UNREACHABLE',
            details={'reason': reason}
        )


class DeviceRejectedError(DeviceApiError):
    """Raised when the device answers with a non-success HTTP status."""

    def __init__(self, endpoint: str, status: int, body: Optional[str] = None):
        self.status = status
        msg = f"Device rejected {endpoint} with status {status}"
        if body:
            msg = f"{msg} - {body[:100]}"
        super().__init__(
            endpoint=endpoint,
            message=msg,
            code='DEVICE_REJECTED',
            details={'status': status}
        )


class MalformedPayloadError(DeviceApiError):
    """Raised when a device response cannot be decoded or validated."""

    def __init__(self, endpoint: str, reason: str):
        super().__init__(
            endpoint=endpoint,
            message=f"Malformed payload from {endpoint}: {reason}",
            code='MALFORMED_PAYLOAD',
            details={'reason': reason}
        )


class StaleCycleError(DomainException):
    """
    Raised internally when a sync cycle has been superseded.

    Never surfaced to the user.
    """

    def __init__(self, token: int, current_token: int):
        self.token = token
        self.current_token = current_token
        super().__init__(
            message=f"Cycle {token} superseded by cycle {current_token}",
            code='STALE_CYCLE',
            details={'token': token, 'current_token': current_token}
        )


class EngineSuspendedError(DomainException):
    """Raised when a command is issued while polling is suspended."""

    def __init__(self, message: str = "Engine is suspended until resumed by the operator"):
        super().__init__(message=message, code='ENGINE_SUSPENDED')

"""
Custom exceptions for WaterMe.

This module defines all custom exceptions used throughout the application,
providing clear error hierarchies and detailed error information for debugging.
"""

from typing import Optional, Dict, Any


class WaterMeError(Exception):
    """Base exception for all WaterMe errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_code = error_code


class ConfigurationError(WaterMeError):
    """Raised when there are configuration or setup issues."""
    pass


class ContractViolationError(WaterMeError):
    """Base class for contract programming violations."""
    pass


class PreconditionError(ContractViolationError):
    """Raised when a function precondition is violated."""
    pass


class PostconditionError(ContractViolationError):
    """Raised when a function postcondition is violated."""
    pass


class StoreUnavailableError(WaterMeError):
    """Raised when the record store cannot serve a read or a write."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation


class DuplicateResourceError(WaterMeError):
    """Raised when a write violates a uniqueness constraint."""

    def __init__(self, resource_type: str, identifier: str, **kwargs):
        super().__init__(f"Duplicate {resource_type}: {identifier}", **kwargs)
        self.resource_type = resource_type
        self.identifier = identifier


class CommunicationError(WaterMeError):
    """Raised when communication with external services fails."""

    def __init__(self, message: str, service: Optional[str] = None, endpoint: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.service = service
        self.endpoint = endpoint


class ExternalServiceError(CommunicationError):
    """Raised when external services fail."""

    def __init__(self, service: str, status_code: Optional[int] = None, response_body: Optional[str] = None, **kwargs):
        message = f"External service error: {service}"
        if status_code:
            message += f" (HTTP {status_code})"
        super().__init__(message, service=service, **kwargs)
        self.status_code = status_code
        self.response_body = response_body


class MessageRejectedError(CommunicationError):
    """Raised when the chat service refuses a message for good (blocked bot, bad chat)."""
    pass


class TimeoutError(WaterMeError):
    """Raised when operations timeout."""

    def __init__(self, operation: str, timeout_seconds: float, **kwargs):
        super().__init__(f"Operation timed out: {operation} after {timeout_seconds}s", **kwargs)
        self.operation = operation
        self.timeout_seconds = timeout_seconds


class CircuitBreakerOpenError(WaterMeError):
    """Raised when a circuit breaker is open."""

    def __init__(self, service: str, **kwargs):
        super().__init__(f"Circuit breaker open for service: {service}", **kwargs)
        self.service = service


class AuthenticationError(WaterMeError):
    """Raised when a webhook call carries the wrong secret."""
    pass


class BusinessLogicError(WaterMeError):
    """Raised when business logic constraints are violated."""
    pass


class NotFoundError(BusinessLogicError):
    """Raised when a controller or user record is absent."""
    pass


class ControllerNotFoundError(NotFoundError):
    """Raised when no controller is registered under a MAC address."""

    def __init__(self, mac_address: str, **kwargs):
        super().__init__(f"Controller not found: {mac_address}", **kwargs)
        self.mac_address = mac_address


class UserNotFoundError(NotFoundError):
    """Raised when no user record exists for a Telegram user id."""

    def __init__(self, user_id: int, **kwargs):
        super().__init__(f"User not found: {user_id}", **kwargs)
        self.user_id = user_id


class AlreadySubscribedError(BusinessLogicError):
    """Raised when a user subscribes to a controller it already follows."""

    def __init__(self, user_id: int, mac_address: str, **kwargs):
        super().__init__(f"User {user_id} is already subscribed to {mac_address}", **kwargs)
        self.user_id = user_id
        self.mac_address = mac_address


class PartialFanoutFailure(WaterMeError):
    """Raised when one controller's notification pass fails."""

    def __init__(self, mac_address: str, reason: str, **kwargs):
        super().__init__(f"Notification pass failed for {mac_address}: {reason}", **kwargs)
        self.mac_address = mac_address
        self.reason = reason


# Exception mapping for HTTP status codes
EXCEPTION_STATUS_MAP = {
    PreconditionError: 400,
    ControllerNotFoundError: 404,
    UserNotFoundError: 404,
    NotFoundError: 404,
    AlreadySubscribedError: 409,
    DuplicateResourceError: 409,
    AuthenticationError: 401,
    BusinessLogicError: 400,
    ConfigurationError: 500,
    StoreUnavailableError: 503,
    CommunicationError: 502,
    ExternalServiceError: 502,
    MessageRejectedError: 502,
    TimeoutError: 504,
    CircuitBreakerOpenError: 503,
}


def get_http_status_code(exception: Exception) -> int:
    """Get appropriate HTTP status code for an exception."""
    exception_type = type(exception)
    return EXCEPTION_STATUS_MAP.get(exception_type, 500)


def is_retryable_error(exception: Exception) -> bool:
    """Determine if an error is retryable."""
    retryable_exceptions = (
        CommunicationError,
        TimeoutError,
        CircuitBreakerOpenError,
        StoreUnavailableError,
    )

    # Don't retry authentication or business errors
    non_retryable_exceptions = (
        AuthenticationError,
        MessageRejectedError,
        BusinessLogicError,
    )

    if isinstance(exception, non_retryable_exceptions):
        return False

    return isinstance(exception, retryable_exceptions)


def should_log_error(exception: Exception) -> bool:
    """Determine if an error should be logged."""
    # Expected user errors end up as chat replies, not error logs
    low_priority_exceptions = (
        NotFoundError,
        AlreadySubscribedError,
        AuthenticationError,
    )

    return not isinstance(exception, low_priority_exceptions)

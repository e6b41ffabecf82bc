"""
Core Exceptions
================

Custom exceptions for the escalation service.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries (scheduler loop, HTTP router).
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class StoreUnavailableException(RepositoryException):
    """
    The escalation store could not be reached or failed mid-operation.

    Transient by nature: the scheduler logs it and retries on the next tick.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"Escalation store unavailable during '{operation}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message, {"operation": operation})


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Any] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id is not None:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ComplaintAlreadyResolvedException(DomainException):
    """Raised when an operator action targets a resolved complaint."""

    def __init__(self, complaint_id: Any):
        self.complaint_id = complaint_id
        super().__init__(
            f"Complaint {complaint_id} is already resolved",
            {"complaint_id": complaint_id}
        )


class EscalationConflictException(DomainException):
    """
    The stored escalation level changed between decision and write.

    Raised by stores performing the conditional level update.
    """

    def __init__(self, complaint_id: Any, expected_level: int, actual_level: Optional[int] = None):
        self.complaint_id = complaint_id
        self.expected_level = expected_level
        self.actual_level = actual_level
        super().__init__(
            f"Escalation level of complaint {complaint_id} changed concurrently",
            {
                "complaint_id": complaint_id,
                "expected_level": expected_level,
                "actual_level": actual_level,
            }
        )


class ConcurrentSweepRejectedException(ApplicationException):
    """A sweep was requested while another sweep is still in flight."""

    def __init__(self, message: str = "Escalation sweep already in progress"):
        super().__init__(message)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationFailedException(ExternalServiceException):
    """Exception for notification delivery failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notification", message, details)

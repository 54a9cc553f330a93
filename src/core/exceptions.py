"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


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


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class InvalidTransitionException(DomainException):
    """Raised when a workflow or SLA phase transition is not allowed."""

    def __init__(
        self,
        complaint_id: Optional[str],
        reason: str,
        details: Optional[dict] = None
    ):
        self.complaint_id = complaint_id
        self.reason = reason
        super().__init__(
            f"Invalid transition for complaint {complaint_id}: {reason}",
            details or {"complaint_id": complaint_id}
        )


class ConcurrencyConflictException(RepositoryException):
    """Raised when a write carries a stale version."""

    def __init__(
        self,
        complaint_id: str,
        expected_version: int,
        actual_version: Optional[int] = None
    ):
        self.complaint_id = complaint_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Complaint {complaint_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            {
                "complaint_id": complaint_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            }
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

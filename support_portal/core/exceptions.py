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

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    status_code = 409


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for structurally invalid input."""

    status_code = 422


class AccessDeniedException(ApplicationException):
    """Raised when a permission or department rule denies an action."""

    status_code = 403


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

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


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class SlackException(ExternalServiceException):
    """Exception for Slack Web API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Slack", message, details)


class SnapshotAlreadyCapturedException(DomainException):
    """Raised when a captured ticket snapshot would be overwritten implicitly."""

    def __init__(self, ticket_id: str, details: Optional[dict] = None):
        self.ticket_id = ticket_id
        super().__init__(
            f"Snapshot already captured for ticket {ticket_id}",
            details or {"ticket_id": ticket_id}
        )


class OrgHierarchyCycleException(DomainException):
    """Raised when a manager assignment would make the org chart cyclic."""

    def __init__(self, user_id: str, manager_id: str, details: Optional[dict] = None):
        self.user_id = user_id
        self.manager_id = manager_id
        super().__init__(
            f"Assigning manager {manager_id} to user {user_id} creates a cycle",
            details or {"user_id": user_id, "manager_id": manager_id}
        )

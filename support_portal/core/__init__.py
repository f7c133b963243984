"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from support_portal.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    AccessDeniedException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    SlackException,
    SnapshotAlreadyCapturedException,
    OrgHierarchyCycleException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "AccessDeniedException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "SlackException",
    "SnapshotAlreadyCapturedException",
    "OrgHierarchyCycleException",
]

"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from src.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    StoreUnavailableException,
    ValidationException,
    ResourceNotFoundException,
    ComplaintAlreadyResolvedException,
    EscalationConflictException,
    ConcurrentSweepRejectedException,
    ConfigurationException,
    ExternalServiceException,
    NotificationFailedException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "StoreUnavailableException",
    "ValidationException",
    "ResourceNotFoundException",
    "ComplaintAlreadyResolvedException",
    "EscalationConflictException",
    "ConcurrentSweepRejectedException",
    "ConfigurationException",
    "ExternalServiceException",
    "NotificationFailedException",
]

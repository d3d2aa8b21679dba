"""
Core Domain Module

Shared domain exceptions.
"""

from ai_admin.core.domain.exceptions import (
    BookingException,
    BookingOwnershipException,
    ContextLoadError,
    DomainException,
    EntityNotFoundException,
    IntegrationException,
    SlotUnavailableException,
    ValidationException,
)

__all__ = [
    "BookingException",
    "BookingOwnershipException",
    "ContextLoadError",
    "DomainException",
    "EntityNotFoundException",
    "IntegrationException",
    "SlotUnavailableException",
    "ValidationException",
]

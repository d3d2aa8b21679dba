"""
Domain Exceptions

Business rule violations and domain-specific errors. Each carries a machine-readable
``code`` that command results and user-facing text are keyed on.
"""

from typing import Any


class DomainException(Exception):
    """
    Base exception for all domain-related errors.
    """

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        """
        Initialize domain exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "SLOT_UNAVAILABLE")
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(DomainException):
    """Raised when required input is missing or malformed."""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any, message: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        msg = message or f"{entity_type} with ID {entity_id} not found"
        super().__init__(
            msg,
            "ENTITY_NOT_FOUND",
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class ContextLoadError(DomainException):
    """Raised when no tier (cache, store, catalog) could produce a conversation context."""

    def __init__(self, phone: str, company_id: int, original_error: Exception | None = None):
        self.phone = phone
        self.company_id = company_id
        self.original_error = original_error
        super().__init__(
            f"Could not load context for {phone}@{company_id}: {original_error}",
            "CONTEXT_LOAD_ERROR",
            {"phone": phone, "company_id": company_id},
        )


class BookingException(DomainException):
    """Raised when the booking system refuses or fails an operation."""

    def __init__(self, message: str, code: str = "BOOKING_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message, code, details)


class SlotUnavailableException(BookingException):
    """The requested time is taken or outside the schedule. Never retried."""

    def __init__(self, message: str = "Selected time is no longer available", details: dict[str, Any] | None = None):
        super().__init__(message, "SLOT_UNAVAILABLE", details)


class BookingOwnershipException(BookingException):
    """The booking does not belong to the phone asking to change it."""

    def __init__(self, booking_id: Any, phone: str):
        self.booking_id = booking_id
        self.phone = phone
        super().__init__(
            f"Booking {booking_id} does not belong to {phone}",
            "BOOKING_NOT_OWNED",
            {"booking_id": str(booking_id)},
        )


class IntegrationException(DomainException):
    """Raised when an external integration fails."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        self.service = service
        self.status_code = status_code
        super().__init__(
            f"{service} error: {message}",
            "INTEGRATION_ERROR",
            {"service": service, "status_code": status_code},
        )

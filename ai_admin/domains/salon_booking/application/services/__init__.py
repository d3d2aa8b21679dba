"""
Salon Booking Application Services

- BookingService: slot search and booking mutations behind breaker + retry
- SlotValidator: overlap checks against existing bookings, time-window filtering
- CommandExecutor: command registry and dispatch
- ResponseProcessor: assistant text to client message
- ContextManager: tiered conversation context loading and persistence
"""

from .booking_service import (
    BUSINESS_EXCEPTIONS,
    NON_RETRYABLE_EXCEPTIONS,
    BookingService,
    build_idempotency_key,
    is_slot_unavailable_error,
)
from .command_executor import CommandExecutor, error_code_for
from .command_parser import clean_display_text, parse_commands, remove_commands
from .context_manager import ContextManager, ContextManagerConfig, rank_services
from .response_processor import ProcessedResponse, ResponseProcessor
from .slot_validator import SlotValidator

__all__ = [
    "BUSINESS_EXCEPTIONS",
    "NON_RETRYABLE_EXCEPTIONS",
    "BookingService",
    "CommandExecutor",
    "ContextManager",
    "ContextManagerConfig",
    "ProcessedResponse",
    "ResponseProcessor",
    "SlotValidator",
    "build_idempotency_key",
    "clean_display_text",
    "error_code_for",
    "is_slot_unavailable_error",
    "parse_commands",
    "rank_services",
    "remove_commands",
]

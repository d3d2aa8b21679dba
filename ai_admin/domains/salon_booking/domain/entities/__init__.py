"""Salon booking domain entities."""

from .booking import BookedService, Booking, BookingRequest, BookingResult, TimeSlot
from .catalog import ClientInfo, Service, StaffMember
from .conversation_context import (
    ChatMessage,
    ClientPreferences,
    ContextUpdate,
    ConversationContext,
    DialogContext,
    DialogSelection,
    DialogState,
    PendingAction,
)

__all__ = [
    "BookedService",
    "Booking",
    "BookingRequest",
    "BookingResult",
    "ChatMessage",
    "ClientInfo",
    "ClientPreferences",
    "ContextUpdate",
    "ConversationContext",
    "DialogContext",
    "DialogSelection",
    "DialogState",
    "PendingAction",
    "Service",
    "StaffMember",
    "TimeSlot",
]

"""
Salon Booking Use Cases

Business use cases for the salon booking domain.
"""

from .process_message import (
    ProcessMessageRequest,
    ProcessMessageResponse,
    ProcessMessageUseCase,
)

__all__ = [
    "ProcessMessageUseCase",
    "ProcessMessageRequest",
    "ProcessMessageResponse",
]

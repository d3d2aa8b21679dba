"""Command Value Objects.

Commands embedded by the assistant in its reply text and the results of running them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CommandName(str, Enum):
    """Commands the executor knows how to run."""

    SEARCH_SLOTS = "SEARCH_SLOTS"
    SEARCH_SERVICES = "SEARCH_SERVICES"
    SEARCH_STAFF = "SEARCH_STAFF"
    CHECK_STAFF_SCHEDULE = "CHECK_STAFF_SCHEDULE"
    CREATE_BOOKING = "CREATE_BOOKING"
    CANCEL_BOOKING = "CANCEL_BOOKING"
    RESCHEDULE_BOOKING = "RESCHEDULE_BOOKING"
    CONFIRM_BOOKING = "CONFIRM_BOOKING"
    MARK_NO_SHOW = "MARK_NO_SHOW"
    SHOW_PRICES = "SHOW_PRICES"
    SHOW_MY_BOOKINGS = "SHOW_MY_BOOKINGS"
    SHOW_PORTFOLIO = "SHOW_PORTFOLIO"
    SAVE_CLIENT_NAME = "SAVE_CLIENT_NAME"
    UPDATE_PREFERENCES = "UPDATE_PREFERENCES"


class ErrorCode(str, Enum):
    """Machine-readable failure reasons carried by ``CommandResult``."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_COMMAND = "UNKNOWN_COMMAND"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"
    BOOKING_NOT_OWNED = "BOOKING_NOT_OWNED"
    CIRCUIT_BREAKER_OPEN = "CIRCUIT_BREAKER_OPEN"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    RATE_LIMIT_BLOCKED = "RATE_LIMIT_BLOCKED"
    TIMEOUT = "TIMEOUT"
    EXECUTION_ERROR = "EXECUTION_ERROR"


# Codes that mean "the booking system is temporarily unreachable, try later"
TEMPORARY_ERROR_CODES = frozenset(
    {
        ErrorCode.CIRCUIT_BREAKER_OPEN.value,
        ErrorCode.RATE_LIMIT_EXCEEDED.value,
        ErrorCode.RATE_LIMIT_BLOCKED.value,
        ErrorCode.TIMEOUT.value,
    }
)


@dataclass(frozen=True)
class Command:
    """A command parsed from ``[NAME key: value, ...]``."""

    name: str
    params: dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: str | None = None) -> str | None:
        value = self.params.get(key)
        if value is None:
            return default
        value = value.strip().strip("\"'").strip()
        return value or default


@dataclass
class CommandResult:
    """Outcome of one executed command. Every command produces exactly one."""

    command: str
    success: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    type: str | None = None

    @classmethod
    def ok(cls, command: str, data: Any = None, type: str | None = None) -> "CommandResult":
        return cls(command=command, success=True, data=data, type=type)

    @classmethod
    def fail(cls, command: str, error: str, error_code: str = ErrorCode.EXECUTION_ERROR.value) -> "CommandResult":
        return cls(command=command, success=False, error=error, error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "error_code": self.error_code,
            "type": self.type,
        }

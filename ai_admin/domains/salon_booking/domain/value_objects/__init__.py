"""Salon booking value objects."""

from .command import TEMPORARY_ERROR_CODES, Command, CommandName, CommandResult, ErrorCode

__all__ = [
    "TEMPORARY_ERROR_CODES",
    "Command",
    "CommandName",
    "CommandResult",
    "ErrorCode",
]

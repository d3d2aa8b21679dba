"""
Logging setup.

Console output is colored, JSON or plain; an optional file handler always
writes JSON. Client phone numbers are masked on every handler so that logs can
be shared without exposing who wrote to the salon.
"""

import json
import logging
import re
import sys
from datetime import UTC, datetime

# Attributes present on every LogRecord; anything else came in through ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}

_PHONE_PATTERN = re.compile(r"(?<!\d)[78]\d{10}(?!\d)")

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def mask(text: str, visible_chars: int = 4, mask_char: str = "*") -> str:
    """Mask text, showing only the last ``visible_chars`` characters."""
    if not text or len(text) <= visible_chars:
        return text
    return mask_char * (len(text) - visible_chars) + text[-visible_chars:]


def mask_phones(text: str) -> str:
    return _PHONE_PATTERN.sub(lambda match: mask(match.group(0)), text)


class PhoneMaskingFilter(logging.Filter):
    """Masks phone numbers in the rendered message and in string ``extra`` fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_phones(message)
        if masked != message:
            record.msg, record.args = masked, None
        for key, value in list(vars(record).items()):
            if key not in _RESERVED_ATTRS and isinstance(value, str):
                setattr(record, key, mask_phones(value))
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields go under ``"extra"``."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_data = {key: value for key, value in vars(record).items() if key not in _RESERVED_ATTRS}
        if extra_data:
            log_data["extra"] = extra_data

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Console formatter with the level name colored."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _console_formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return JSONFormatter()
    if format_type == "colored":
        return ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT)
    return logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT)


def configure_logging(
    level: str = "INFO",
    format_type: str = "colored",
    log_file: str | None = None,
    mask_phone_numbers: bool = True,
) -> None:
    """
    Replace the root handlers with a console handler (and a JSON file handler).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'colored', 'json', or 'plain'
        log_file: Optional file path for file logging (always JSON)
        mask_phone_numbers: Attach PhoneMaskingFilter to every handler
    """
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(_console_formatter(format_type))
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(numeric_level)
        if mask_phone_numbers:
            handler.addFilter(PhoneMaskingFilter())
        root_logger.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

"""
Response Processor

Turns raw assistant text into the message the client sees: executes embedded
commands, strips them, renders results the text did not mention and rewrites
success claims that the command results contradict.
"""

import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ...domain.entities import Booking, ConversationContext
from ...domain.value_objects import (
    TEMPORARY_ERROR_CODES,
    Command,
    CommandName,
    CommandResult,
    ErrorCode,
)
from .command_executor import CommandExecutor
from .command_parser import clean_display_text, parse_commands, remove_commands

logger = logging.getLogger(__name__)

MAX_ALTERNATIVE_SLOTS = 5
MAX_RENDERED_SLOTS = 8

SUCCESS_CLAIM_PATTERN = re.compile(
    r"записываю вас|запись создана|вы записаны|вы успешно записаны|записала вас|записал вас|"
    r"i'?ve booked you|booking (?:is )?confirmed|you'?re booked|you are booked",
    re.IGNORECASE,
)

SLOT_TAKEN_PHRASE = "к сожалению, это время уже занято"
BOOKING_FAILED_PHRASE = "не удалось создать запись"

PICK_ANOTHER_TIME = "\n\nДавайте подберем другое удобное время."
BOOKING_FAILED_HINT = "\n\nПопробуйте выбрать другое время или позвоните нам."
SLOTS_FAILED_HINT = "\n\nНе удалось найти свободное время. Попробуйте выбрать другую дату."
CANCEL_FAILED_TEXT = "Не удалось отменить запись. Пожалуйста, позвоните нам для отмены."
TEMPORARY_FAILURE_TEXT = "Сервис записи временно недоступен. Пожалуйста, попробуйте через несколько минут."
GENERIC_FAILURE_TEXT = "Извините, произошла техническая ошибка. Попробуйте еще раз."
NO_SLOTS_TEXT = "На эту дату свободного времени нет."
NO_BOOKINGS_TEXT = "У вас нет предстоящих записей."


@dataclass
class ProcessedResponse:
    """Final client-facing text plus what was executed to produce it."""

    response: str
    executed_commands: list[Command] = field(default_factory=list)
    results: list[CommandResult] = field(default_factory=list)

    @property
    def booking_created(self) -> bool:
        return any(r.success and r.command == CommandName.CREATE_BOOKING.value for r in self.results)


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _match_case(source: str, replacement: str) -> str:
    """Capitalize ``replacement`` when ``source`` starts with a capital."""
    if source[:1].isupper():
        return _capitalize(replacement)
    return replacement


def _append(text: str, addition: str) -> str:
    if not text:
        return addition.lstrip()
    return text + addition


def render_slots(data: dict[str, Any]) -> str:
    slots = data.get("slots") or []
    if not slots:
        return NO_SLOTS_TEXT
    times = ", ".join(slot["time"] for slot in slots[:MAX_RENDERED_SLOTS])
    day = dt.date.fromisoformat(data["date"]).strftime("%d.%m") if data.get("date") else ""
    return f"Свободное время {day}: {times}".replace("  ", " ")


def render_prices(data: list[dict[str, Any]]) -> str:
    if not data:
        return ""
    lines = [f"{item['title']}: {item['price']}" for item in data]
    return "Цены:\n" + "\n".join(lines)


def render_bookings(data: dict[str, Any], numbered: bool = False) -> str:
    bookings = data.get("bookings") or []
    if not bookings:
        return NO_BOOKINGS_TEXT

    lines = []
    for index, raw in enumerate(bookings, start=1):
        line = Booking.model_validate(raw).describe()
        lines.append(f"{index}. {line}" if numbered else f"• {line}")

    header = "Какую запись отменить? Ответьте номером:" if numbered else "Ваши записи:"
    return header + "\n" + "\n".join(lines)


class ResponseProcessor:
    """
    Assistant text post-processing.

    Example:
        ```python
        processor = ResponseProcessor(executor)
        processed = await processor.process_ai_response(raw_text, context)
        send(processed.response)
        ```
    """

    def __init__(self, executor: CommandExecutor):
        self.executor = executor

    async def process_ai_response(self, raw_text: str, context: ConversationContext) -> ProcessedResponse:
        """
        Execute commands in ``raw_text`` and build the client-facing text.

        The returned text never contains command tokens.
        """
        commands = parse_commands(raw_text)
        text = clean_display_text(remove_commands(raw_text))

        if not commands:
            return ProcessedResponse(response=text)

        logger.info(
            f"Executing {len(commands)} commands",
            extra={"commands": [c.name for c in commands], "phone": context.phone},
        )
        results = await self.executor.execute_multiple(commands, context)

        text = self._render_results(text, results)
        text = await self._reconcile_errors(text, commands, results, context)

        return ProcessedResponse(
            response=clean_display_text(text),
            executed_commands=commands[: len(results)],
            results=results,
        )

    def _render_results(self, text: str, results: list[CommandResult]) -> str:
        """Append data the assistant asked for but did not spell out."""
        for result in results:
            if not result.success:
                continue

            if result.command == CommandName.SEARCH_SLOTS.value:
                times = [slot["time"] for slot in (result.data or {}).get("slots") or []]
                if not any(time in text for time in times) and NO_SLOTS_TEXT not in text:
                    text = _append(text, "\n\n" + render_slots(result.data or {}))

            elif result.command == CommandName.SHOW_PRICES.value:
                rendered = render_prices(result.data or [])
                titles = [item["title"] for item in result.data or []]
                if rendered and not any(title in text for title in titles):
                    text = _append(text, "\n\n" + rendered)

            elif result.command == CommandName.SHOW_MY_BOOKINGS.value:
                numbered = result.type == "cancellation_selection"
                data = result.data or {}
                times = [
                    dt.datetime.fromisoformat(b["datetime"]).strftime("%H:%M") for b in data.get("bookings") or []
                ]
                if numbered or not times or not any(time in text for time in times):
                    text = _append(text, "\n\n" + render_bookings(data, numbered=numbered))

            elif result.command == CommandName.SHOW_PORTFOLIO.value:
                message = (result.data or {}).get("message")
                if message and message not in text:
                    text = _append(text, "\n\n" + message)

        return text

    async def _reconcile_errors(
        self,
        text: str,
        commands: list[Command],
        results: list[CommandResult],
        context: ConversationContext,
    ) -> str:
        for command, result in zip(commands, results):
            if result.success or result.error_code == ErrorCode.UNKNOWN_COMMAND.value:
                continue

            if result.error_code in TEMPORARY_ERROR_CODES:
                if TEMPORARY_FAILURE_TEXT not in text:
                    text = self._replace_success_claim(text, BOOKING_FAILED_PHRASE)
                    text = _append(text, "\n\n" + TEMPORARY_FAILURE_TEXT)
                continue

            if command.name == CommandName.CREATE_BOOKING.value:
                text = await self._reconcile_create_failure(text, command, result, context)
            elif command.name == CommandName.SEARCH_SLOTS.value:
                text = _append(text, SLOTS_FAILED_HINT)
            elif command.name == CommandName.CANCEL_BOOKING.value:
                text = _append(text, "\n\n" + CANCEL_FAILED_TEXT)
            elif GENERIC_FAILURE_TEXT not in text:
                text = _append(text, "\n\n" + GENERIC_FAILURE_TEXT)

        return text

    @staticmethod
    def _replace_success_claim(text: str, replacement: str) -> str:
        return SUCCESS_CLAIM_PATTERN.sub(lambda m: _match_case(m.group(0), replacement), text)

    async def _reconcile_create_failure(
        self,
        text: str,
        command: Command,
        result: CommandResult,
        context: ConversationContext,
    ) -> str:
        if result.error_code != ErrorCode.SLOT_UNAVAILABLE.value:
            text = self._replace_success_claim(text, BOOKING_FAILED_PHRASE)
            if BOOKING_FAILED_PHRASE not in text.lower():
                text = _append(text, "\n\n" + _capitalize(BOOKING_FAILED_PHRASE) + ".")
            return _append(text, BOOKING_FAILED_HINT)

        text = self._replace_success_claim(text, SLOT_TAKEN_PHRASE)
        if SLOT_TAKEN_PHRASE not in text.lower():
            text = _append(text, "\n\n" + _capitalize(SLOT_TAKEN_PHRASE) + ".")

        alternatives = await self._find_alternatives(command, context)
        if alternatives:
            return _append(text, "\n\nСвободное время: " + ", ".join(alternatives))
        return _append(text, PICK_ANOTHER_TIME)

    async def _find_alternatives(self, command: Command, context: ConversationContext) -> list[str]:
        """Free times on the same day for the same service and master."""
        params = {
            key: value
            for key, value in command.params.items()
            if key in ("service_id", "service_name", "staff_id", "staff_name")
        }
        booking_datetime = command.get("datetime")
        date_value = booking_datetime.split()[0].split("T")[0] if booking_datetime else command.get("date")
        if date_value:
            params["date"] = date_value

        result = await self.executor.execute(Command(CommandName.SEARCH_SLOTS.value, params), context)
        if not result.success:
            return []
        return [slot["time"] for slot in (result.data or {}).get("slots") or []][:MAX_ALTERNATIVE_SLOTS]

"""
Command Executor

Runs commands parsed from assistant text against the booking service and the
loaded conversation context. Every command yields exactly one ``CommandResult``;
handler exceptions are converted at the dispatch boundary.
"""

import datetime as dt
import logging
import time
from typing import Any, Awaitable, Callable, Iterable

from pydantic import ValidationError

from ai_admin.core.domain import (
    BookingOwnershipException,
    DomainException,
    SlotUnavailableException,
    ValidationException,
)
from ai_admin.core.infrastructure import (
    CircuitBreakerError,
    CircuitBreakerTimeoutError,
    PerformanceMetrics,
    RateLimitError,
    RetryExhaustedError,
)

from ...domain.entities import BookingRequest, ClientPreferences, ConversationContext, Service, StaffMember
from ...domain.value_objects import Command, CommandName, CommandResult, ErrorCode
from .booking_service import BookingService
from .date_parser import parse_date, parse_datetime, parse_time
from .slot_validator import SlotValidator

logger = logging.getLogger(__name__)

CommandHandler = Callable[[Command, ConversationContext], Awaitable[CommandResult]]

DEFAULT_CRITICAL_COMMANDS = frozenset(
    {
        CommandName.CREATE_BOOKING.value,
        CommandName.CANCEL_BOOKING.value,
        CommandName.RESCHEDULE_BOOKING.value,
        CommandName.CONFIRM_BOOKING.value,
        CommandName.MARK_NO_SHOW.value,
    }
)

PORTFOLIO_UNAVAILABLE_MESSAGE = (
    "Портфолио временно недоступно. Вы можете посмотреть наши работы в Instagram или на сайте."
)

SCHEDULE_LOOKAHEAD_DAYS = 7
DEFAULT_SLOT_TIME_WINDOW = 120  # minutes
DEFAULT_MAX_SLOTS = 10
CANCEL_ACTIONS = ("cancel", "cancellation", "отмена", "отменить")


def error_code_for(exc: BaseException) -> str:
    """Map an exception raised by a handler to a result error code."""
    if isinstance(exc, RetryExhaustedError) and exc.last_exception is not None:
        return error_code_for(exc.last_exception)
    if isinstance(exc, SlotUnavailableException):
        return ErrorCode.SLOT_UNAVAILABLE.value
    if isinstance(exc, BookingOwnershipException):
        return ErrorCode.BOOKING_NOT_OWNED.value
    if isinstance(exc, ValidationException):
        return ErrorCode.VALIDATION_ERROR.value
    if isinstance(exc, CircuitBreakerError):
        return ErrorCode.CIRCUIT_BREAKER_OPEN.value
    if isinstance(exc, RateLimitError):
        return exc.code
    if isinstance(exc, (CircuitBreakerTimeoutError, TimeoutError)):
        return ErrorCode.TIMEOUT.value
    if isinstance(exc, DomainException) and exc.code == "ENTITY_NOT_FOUND":
        return ErrorCode.NOT_FOUND.value
    return ErrorCode.EXECUTION_ERROR.value


def _to_int(value: str | None, field: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ValidationException(f"{field} must be a number, got '{value}'", field=field) from e


class CommandExecutor:
    """
    Command registry and dispatcher.

    Critical commands (booking mutations by default) stop a batch when they
    fail, so later commands never act on a booking that does not exist.

    Example:
        ```python
        executor = CommandExecutor(booking_service, metrics=metrics)
        results = await executor.execute_multiple(parse_commands(text), context)
        ```
    """

    def __init__(
        self,
        booking_service: BookingService,
        metrics: PerformanceMetrics | None = None,
        critical_commands: Iterable[str] | None = None,
        today: Callable[[], dt.date] = dt.date.today,
        slot_time_window: int = DEFAULT_SLOT_TIME_WINDOW,
        max_slots: int = DEFAULT_MAX_SLOTS,
    ):
        self.booking_service = booking_service
        self.metrics = metrics
        self.critical_commands = frozenset(critical_commands) if critical_commands is not None else DEFAULT_CRITICAL_COMMANDS
        self._today = today
        self.slot_time_window = slot_time_window
        self.max_slots = max_slots
        self._handlers: dict[str, CommandHandler] = {
            CommandName.SEARCH_SLOTS.value: self._search_slots,
            CommandName.SEARCH_SERVICES.value: self._search_services,
            CommandName.SEARCH_STAFF.value: self._search_staff,
            CommandName.CHECK_STAFF_SCHEDULE.value: self._check_staff_schedule,
            CommandName.CREATE_BOOKING.value: self._create_booking,
            CommandName.CANCEL_BOOKING.value: self._cancel_booking,
            CommandName.RESCHEDULE_BOOKING.value: self._reschedule_booking,
            CommandName.CONFIRM_BOOKING.value: self._confirm_booking,
            CommandName.MARK_NO_SHOW.value: self._mark_no_show,
            CommandName.SHOW_PRICES.value: self._show_prices,
            CommandName.SHOW_MY_BOOKINGS.value: self._show_my_bookings,
            CommandName.SHOW_PORTFOLIO.value: self._show_portfolio,
            CommandName.SAVE_CLIENT_NAME.value: self._save_client_name,
            CommandName.UPDATE_PREFERENCES.value: self._update_preferences,
        }

    def register(self, name: str, handler: CommandHandler) -> None:
        """Register or replace a handler."""
        self._handlers[name] = handler

    def is_supported(self, name: str) -> bool:
        return name in self._handlers

    def is_critical(self, name: str) -> bool:
        return name in self.critical_commands

    async def execute(self, command: Command, context: ConversationContext) -> CommandResult:
        """Run one command. Never raises for handler failures."""
        handler = self._handlers.get(command.name)
        if handler is None:
            logger.warning(f"Unknown command: {command.name}")
            return CommandResult.fail(
                command.name,
                f"Unknown command: {command.name}",
                ErrorCode.UNKNOWN_COMMAND.value,
            )

        started = time.perf_counter()
        try:
            result = await handler(command, context)
        except Exception as e:
            code = error_code_for(e)
            log = logger.warning if code != ErrorCode.EXECUTION_ERROR.value else logger.error
            log(
                f"Command {command.name} failed: {e}",
                extra={"command": command.name, "error_code": code, "phone": context.phone},
            )
            result = CommandResult.fail(command.name, str(e), code)

        duration_ms = (time.perf_counter() - started) * 1000
        if self.metrics is not None:
            self.metrics.record_command(command.name, result.success, duration_ms)

        logger.info(
            f"Command {command.name} {'succeeded' if result.success else 'failed'} in {duration_ms:.0f}ms",
            extra={"command": command.name, "success": result.success, "duration_ms": round(duration_ms, 2)},
        )
        return result

    async def execute_multiple(self, commands: list[Command], context: ConversationContext) -> list[CommandResult]:
        """
        Run commands sequentially in order.

        Stops after the first failed critical command; the returned list then
        ends with that failure.
        """
        results = []
        for command in commands:
            result = await self.execute(command, context)
            results.append(result)
            if not result.success and self.is_critical(command.name):
                logger.warning(
                    f"Critical command {command.name} failed, skipping {len(commands) - len(results)} remaining",
                    extra={"command": command.name, "error_code": result.error_code},
                )
                break
        return results

    # ------------------------------------------------------------------
    # Parameter resolution
    # ------------------------------------------------------------------

    def _resolve_service(self, command: Command, context: ConversationContext) -> Service | None:
        service_id = _to_int(command.get("service_id"), "service_id")
        if service_id is not None:
            return context.get_service(service_id) or Service(id=service_id, title=command.get("service_name") or "")
        mention = command.get("service_name") or command.get("service")
        return context.find_service(mention) if mention else None

    def _resolve_staff(self, command: Command, context: ConversationContext) -> StaffMember | None:
        staff_id = _to_int(command.get("staff_id"), "staff_id")
        if staff_id is not None:
            return context.get_staff(staff_id) or StaffMember(id=staff_id, name=command.get("staff_name") or "")
        mention = command.get("staff_name") or command.get("staff")
        return context.find_staff(mention) if mention else None

    @staticmethod
    def _staff_name(context: ConversationContext, staff_id: int | None) -> str | None:
        member = context.get_staff(staff_id) if staff_id is not None else None
        return member.name if member else None

    def _require_booking_id(self, command: Command) -> int:
        booking_id = _to_int(command.get("booking_id") or command.get("record_id"), "booking_id")
        if booking_id is None:
            raise ValidationException("Booking id is required", field="booking_id")
        return booking_id

    def _command_datetime(self, command: Command, *keys: str) -> dt.datetime | None:
        for key in keys:
            value = command.get(key)
            if value:
                return parse_datetime(value, self._today())
        date_value, time_value = command.get("date"), command.get("time")
        if date_value and time_value:
            return parse_datetime(f"{date_value} {time_value}", self._today())
        return None

    # ------------------------------------------------------------------
    # Search handlers
    # ------------------------------------------------------------------

    async def _search_slots(self, command: Command, context: ConversationContext) -> CommandResult:
        date_value = command.get("date")
        date = parse_date(date_value, self._today()) if date_value else self._today()
        service = self._resolve_service(command, context)
        staff = self._resolve_staff(command, context)
        service_ids = [service.id] if service else None

        if staff is not None:
            slots = await self.booking_service.find_slots(context.company_id, date, service_ids, staff_id=staff.id)
        else:
            staff_ids = [member.id for member in context.staff if member.bookable]
            slots = await self.booking_service.find_slots(context.company_id, date, service_ids, staff_ids=staff_ids)

        time_value = command.get("time")
        if time_value:
            slots = SlotValidator.near_time(slots, parse_time(time_value), self.slot_time_window)
        total_found = len(slots)

        data = {
            "date": date.isoformat(),
            "service": service.title if service else None,
            "service_id": service.id if service else None,
            "total_found": total_found,
            "slots": [
                {
                    "time": slot.time,
                    "datetime": slot.datetime.isoformat(),
                    "staff_id": slot.staff_id,
                    "staff_name": slot.staff_name or self._staff_name(context, slot.staff_id),
                }
                for slot in slots[: self.max_slots]
            ],
        }
        return CommandResult.ok(command.name, data, type="slots")

    async def _search_services(self, command: Command, context: ConversationContext) -> CommandResult:
        query = (command.get("query") or command.get("service_name") or command.get("category") or "").lower()
        services = [
            service
            for service in context.services
            if not query or query in service.title.lower() or query in (service.category or "").lower()
        ]
        data = [service.model_dump(include={"id", "title", "category", "price_min", "price_max"}) for service in services]
        return CommandResult.ok(command.name, data, type="services_list")

    async def _search_staff(self, command: Command, context: ConversationContext) -> CommandResult:
        query = (command.get("query") or command.get("staff_name") or command.get("specialization") or "").lower()
        staff = [
            member
            for member in context.staff
            if member.bookable
            and (not query or query in member.name.lower() or query in (member.specialization or "").lower())
        ]
        data = [member.model_dump(include={"id", "name", "specialization", "rating"}) for member in staff]
        return CommandResult.ok(command.name, data, type="staff_list")

    async def _check_staff_schedule(self, command: Command, context: ConversationContext) -> CommandResult:
        staff = self._resolve_staff(command, context)
        if staff is None:
            raise ValidationException("Staff member is required", field="staff_name")

        date_value = command.get("date")
        start = parse_date(date_value, self._today()) if date_value else self._today()

        schedule = context.staff_schedules.get(str(staff.id))
        if schedule is None:
            end = start + dt.timedelta(days=SCHEDULE_LOOKAHEAD_DAYS)
            schedule = await self.booking_service.get_staff_schedule(context.company_id, staff.id, start, end)

        working_dates = {str(day.get("date")) for day in schedule if day.get("is_working", True)}
        data = {
            "staff_id": staff.id,
            "staff_name": staff.name,
            "date": start.isoformat(),
            "is_working": start.isoformat() in working_dates,
            "schedule": schedule,
        }
        return CommandResult.ok(command.name, data, type="staff_schedule")

    # ------------------------------------------------------------------
    # Booking handlers
    # ------------------------------------------------------------------

    async def _create_booking(self, command: Command, context: ConversationContext) -> CommandResult:
        service = self._resolve_service(command, context)
        booking_datetime = self._command_datetime(command, "datetime")
        if service is None or booking_datetime is None:
            raise ValidationException("Service and date/time are required to create a booking")

        staff = self._resolve_staff(command, context)
        client_name = command.get("client_name") or context.client_name or (context.client.name if context.client else None)

        request = BookingRequest(
            company_id=context.company_id,
            phone=context.phone,
            client_name=client_name,
            service_ids=[service.id],
            staff_id=staff.id if staff else None,
            datetime=booking_datetime,
            comment=command.get("comment"),
        )
        result = await self.booking_service.create_booking(request)

        data = {
            "id": result.id,
            "datetime": booking_datetime.isoformat(),
            "service_id": service.id,
            "service": service.title or None,
            "staff_id": staff.id if staff else None,
            "staff": staff.name if staff and staff.name else None,
        }
        return CommandResult.ok(command.name, data, type="booking_created")

    async def _cancel_booking(self, command: Command, context: ConversationContext) -> CommandResult:
        booking_id = self._require_booking_id(command)
        await self.booking_service.cancel_booking(booking_id, context.company_id, phone=context.phone)
        return CommandResult.ok(command.name, {"id": booking_id}, type="booking_cancelled")

    async def _reschedule_booking(self, command: Command, context: ConversationContext) -> CommandResult:
        booking_id = self._require_booking_id(command)
        new_datetime = self._command_datetime(command, "new_datetime", "datetime")
        if new_datetime is None:
            raise ValidationException("New date/time is required to reschedule", field="new_datetime")

        await self.booking_service.reschedule_booking(booking_id, new_datetime, context.company_id, phone=context.phone)
        return CommandResult.ok(
            command.name,
            {"id": booking_id, "datetime": new_datetime.isoformat()},
            type="booking_rescheduled",
        )

    async def _confirm_booking(self, command: Command, context: ConversationContext) -> CommandResult:
        booking_id = self._require_booking_id(command)
        await self.booking_service.confirm_booking(booking_id, context.company_id, phone=context.phone)
        return CommandResult.ok(command.name, {"id": booking_id}, type="booking_confirmed")

    async def _mark_no_show(self, command: Command, context: ConversationContext) -> CommandResult:
        booking_id = self._require_booking_id(command)
        await self.booking_service.mark_no_show(booking_id, context.company_id)
        return CommandResult.ok(command.name, {"id": booking_id}, type="booking_no_show")

    # ------------------------------------------------------------------
    # Display handlers
    # ------------------------------------------------------------------

    async def _show_prices(self, command: Command, context: ConversationContext) -> CommandResult:
        query = (command.get("category") or command.get("service_name") or "").lower()
        prices = [
            {"title": service.title, "category": service.category, "price": service.price_text}
            for service in context.services
            if service.price_text
            and (not query or query in service.title.lower() or query in (service.category or "").lower())
        ]
        return CommandResult.ok(command.name, prices, type="price_list")

    async def _show_my_bookings(self, command: Command, context: ConversationContext) -> CommandResult:
        bookings = await self.booking_service.get_client_bookings(context.phone, context.company_id)
        action = (command.get("action") or "").lower()
        result_type = "cancellation_selection" if action in CANCEL_ACTIONS and bookings else "bookings_list"
        data = {"bookings": [booking.model_dump(mode="json") for booking in bookings]}
        return CommandResult.ok(command.name, data, type=result_type)

    async def _show_portfolio(self, command: Command, context: ConversationContext) -> CommandResult:
        return CommandResult.ok(command.name, {"message": PORTFOLIO_UNAVAILABLE_MESSAGE}, type="portfolio")

    # ------------------------------------------------------------------
    # Client data handlers (persisted by the context manager)
    # ------------------------------------------------------------------

    async def _save_client_name(self, command: Command, context: ConversationContext) -> CommandResult:
        name = command.get("name") or command.get("client_name")
        if not name:
            raise ValidationException("Client name is required", field="name")
        return CommandResult.ok(command.name, {"name": name}, type="client_name")

    async def _update_preferences(self, command: Command, context: ConversationContext) -> CommandResult:
        delta: dict[str, Any] = {}
        for key in command.params:
            value = command.get(key)
            if value is None:
                continue
            delta[key] = int(value) if key.endswith("_id") and value.isdigit() else value
        if not delta:
            raise ValidationException("No preferences to update")
        try:
            ClientPreferences().apply(delta)
        except ValidationError as e:
            field = str(e.errors()[0]["loc"][0])
            raise ValidationException(f"Invalid value for preference {field}", field=field) from e
        return CommandResult.ok(command.name, delta, type="preferences")

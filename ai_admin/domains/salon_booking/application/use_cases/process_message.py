"""
Process Message Use Case

One inbound client message end to end: rate limit, context, pending action,
AI generation, command execution and context persistence.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any

from ai_admin.core.infrastructure import CompositeRateLimiter, PerformanceMetrics, RateLimitError
from ai_admin.core.shared import normalize_phone

from ...domain.entities import Booking, ChatMessage, ConversationContext
from ...domain.value_objects import Command, CommandName, ErrorCode
from ..ports import IResponseGenerator
from ..services import CommandExecutor, ContextManager, ResponseProcessor
from ..services.response_processor import CANCEL_FAILED_TEXT, GENERIC_FAILURE_TEXT

logger = logging.getLogger(__name__)

INVALID_PHONE_TEXT = "Не удалось определить номер телефона."


@dataclass
class ProcessMessageRequest:
    """Inbound message"""

    phone: str
    company_id: int
    message: str


@dataclass
class ProcessMessageResponse:
    """Text to send back plus what happened on the way"""

    response: str
    success: bool
    phone: str | None = None
    executed_commands: list[str] = field(default_factory=list)
    results: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None


def rate_limit_text(error: RateLimitError) -> str:
    minutes = max(1, math.ceil((error.retry_after or 60) / 60))
    return f"Слишком много сообщений. Пожалуйста, попробуйте через {minutes} мин."


class ProcessMessageUseCase:
    """
    Use case for answering one client message.

    ContextLoadError propagates to the caller: without a context there is
    nothing safe to answer with.
    """

    def __init__(
        self,
        context_manager: ContextManager,
        generator: IResponseGenerator,
        processor: ResponseProcessor,
        executor: CommandExecutor,
        rate_limiter: CompositeRateLimiter | None = None,
        metrics: PerformanceMetrics | None = None,
    ):
        self.context_manager = context_manager
        self.generator = generator
        self.processor = processor
        self.executor = executor
        self.rate_limiter = rate_limiter
        self.metrics = metrics

    async def execute(self, request: ProcessMessageRequest) -> ProcessMessageResponse:
        phone = normalize_phone(request.phone)
        if not phone:
            return ProcessMessageResponse(
                response=INVALID_PHONE_TEXT,
                success=False,
                error="Invalid phone",
                error_code=ErrorCode.VALIDATION_ERROR.value,
            )

        if self.rate_limiter is not None:
            try:
                self.rate_limiter.check_limits(phone)
            except RateLimitError as e:
                logger.warning(f"Rate limited {phone}: {e}", extra={"error_code": e.code, "limiter": e.limiter})
                return ProcessMessageResponse(
                    response=rate_limit_text(e),
                    success=False,
                    phone=phone,
                    error=str(e),
                    error_code=e.code,
                )

        if self.metrics is not None:
            async with self.metrics.track_operation("process_message", company_id=request.company_id):
                return await self._process(phone, request)
        return await self._process(phone, request)

    async def _process(self, phone: str, request: ProcessMessageRequest) -> ProcessMessageResponse:
        company_id = request.company_id
        context = await self.context_manager.load_full_context(phone, company_id)
        await self.context_manager.set_processing_status(phone, company_id, True)

        try:
            chosen = await self.context_manager.handle_pending_action(context, request.message)
            if chosen is not None:
                response = await self._cancel_chosen(context, chosen)
            else:
                response = await self._answer(context, request.message)

            await self.context_manager.add_messages(
                phone,
                company_id,
                [
                    ChatMessage(role="user", content=request.message),
                    ChatMessage(role="assistant", content=response.response),
                ],
            )
            return response
        finally:
            await self.context_manager.set_processing_status(phone, company_id, False)

    async def _answer(self, context: ConversationContext, message: str) -> ProcessMessageResponse:
        started = time.perf_counter()
        try:
            raw_text = await self.generator.generate(message, context)
        except Exception as e:
            self._record_ai_call(started, success=False)
            logger.error(f"Response generation failed: {e}", exc_info=True)
            return ProcessMessageResponse(
                response=GENERIC_FAILURE_TEXT,
                success=False,
                phone=context.phone,
                error=str(e),
                error_code=ErrorCode.EXECUTION_ERROR.value,
            )
        self._record_ai_call(started, success=True)

        processed = await self.processor.process_ai_response(raw_text, context)
        await self.context_manager.save_command_context(
            context.phone,
            context.company_id,
            processed.executed_commands,
            processed.results,
        )

        return ProcessMessageResponse(
            response=processed.response,
            success=True,
            phone=context.phone,
            executed_commands=[c.name for c in processed.executed_commands],
            results=[r.to_dict() for r in processed.results],
        )

    async def _cancel_chosen(self, context: ConversationContext, booking: Booking) -> ProcessMessageResponse:
        command = Command(CommandName.CANCEL_BOOKING.value, {"booking_id": str(booking.id)})
        result = await self.executor.execute(command, context)
        text = f"Запись {booking.describe()} отменена." if result.success else CANCEL_FAILED_TEXT
        return ProcessMessageResponse(
            response=text,
            success=result.success,
            phone=context.phone,
            executed_commands=[command.name],
            results=[result.to_dict()],
            error=result.error,
            error_code=result.error_code,
        )

    def _record_ai_call(self, started: float, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_ai_call((time.perf_counter() - started) * 1000, success=success)

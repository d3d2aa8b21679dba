"""
Context Manager

Assembles the per-conversation context from three tiers and persists dialog
changes back to the durable store.

Load order:
1. In-process LRU, trusted while younger than the freshness window
2. Shared full-context cache; a stale entry keeps its enrichment but re-reads
   dialog state from the durable store
3. Cold path: catalog and store read in parallel, each with its own fallback

Every write invalidates both cache tiers so the next load sees the store's copy.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable

from ai_admin.core.domain import ContextLoadError
from ai_admin.core.infrastructure import PerformanceMetrics
from ai_admin.core.shared import LRUCache

from ...domain.entities import (
    Booking,
    ChatMessage,
    ClientInfo,
    ClientPreferences,
    ContextUpdate,
    ConversationContext,
    DialogContext,
    DialogSelection,
    DialogState,
    PendingAction,
    Service,
)
from ...domain.value_objects import Command, CommandName, CommandResult
from ..ports import ICatalogLoader, IDialogContextStore, ISharedContextCache

logger = logging.getLogger(__name__)

POPULARITY_WEIGHT = 10
FAVORITE_BONUS = 1000
NEW_CLIENT_HAIRCUT_BONUS = 50
HAIRCUT_MARKERS = ("стрижк", "haircut")


@dataclass
class ContextManagerConfig:
    """Freshness and TTL settings for context loading."""

    freshness_seconds: float = 300.0
    full_context_ttl: int = 12 * 3600
    messages_window: int = 20
    schedule_days: int = 7


def rank_services(
    services: list[Service],
    client: ClientInfo | None,
    preferences: ClientPreferences | None,
    business_stats: dict[str, Any],
) -> list[Service]:
    """
    Score and order services for a client.

    score = bookings * 10, +1000 for the client's favorite service, +50 for a
    haircut when the client is new. The sort is stable, so ties keep catalog order.
    """
    popularity = {
        int(item["service_id"]): int(item.get("booking_count", 0))
        for item in business_stats.get("popular_services", [])
        if item.get("service_id") is not None
    }
    favorite_id = (client.favorite_service_id if client else None) or (
        preferences.favorite_service_id if preferences else None
    )

    ranked = []
    for service in services:
        score = popularity.get(service.id, 0) * POPULARITY_WEIGHT
        if favorite_id is not None and service.id == favorite_id:
            score += FAVORITE_BONUS
        category = (service.category or "").lower()
        if client is None and any(marker in category for marker in HAIRCUT_MARKERS):
            score += NEW_CLIENT_HAIRCUT_BONUS
        ranked.append(service.model_copy(update={"score": score}))

    return sorted(ranked, key=lambda s: s.score, reverse=True)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ContextManager:
    """
    Conversation context loading and persistence.

    Example:
        ```python
        manager = ContextManager(store, catalog, LRUCache(max_size=500), shared_cache)
        context = await manager.load_full_context("79001234567", 962302)
        await manager.save_context(context.phone, context.company_id, ContextUpdate(client_name="Anna"))
        ```
    """

    def __init__(
        self,
        store: IDialogContextStore,
        catalog: ICatalogLoader,
        memory_cache: LRUCache[str, ConversationContext],
        shared_cache: ISharedContextCache | None = None,
        metrics: PerformanceMetrics | None = None,
        config: ContextManagerConfig | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.catalog = catalog
        self.memory_cache = memory_cache
        self.shared_cache = shared_cache
        self.metrics = metrics
        self.config = config or ContextManagerConfig()
        self._now = now

    @staticmethod
    def _key(phone: str, company_id: int) -> str:
        return f"{phone}@{company_id}"

    def _record_cache(self, hit: bool) -> None:
        if self.metrics is not None:
            self.metrics.update_cache_metrics(
                hits=int(hit),
                misses=int(not hit),
                size=len(self.memory_cache),
            )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_full_context(self, phone: str, company_id: int) -> ConversationContext:
        """
        Load the context for one conversation.

        Raises:
            ContextLoadError: Neither the durable store nor the catalog answered
        """
        key = self._key(phone, company_id)
        now = self._now()

        cached = self.memory_cache.get(key)
        if cached is not None and cached.is_fresh(self.config.freshness_seconds, now):
            self._record_cache(hit=True)
            logger.debug(f"Context memory hit for {key}")
            return cached.model_copy(deep=True)

        shared = await self._get_shared(phone, company_id)
        if shared is not None:
            self._record_cache(hit=True)
            if not shared.is_fresh(self.config.freshness_seconds, now):
                logger.debug(f"Shared context for {key} is stale, refreshing dialog state")
                shared = await self._refresh_dialog(shared)
                await self._set_shared(shared)
            self.memory_cache.set(key, shared)
            return shared.model_copy(deep=True)

        self._record_cache(hit=False)
        context = await self._load_cold(phone, company_id)
        self.memory_cache.set(key, context)
        await self._set_shared(context)
        return context.model_copy(deep=True)

    async def _get_shared(self, phone: str, company_id: int) -> ConversationContext | None:
        if self.shared_cache is None:
            return None
        try:
            return await self.shared_cache.get_full_context(phone, company_id)
        except Exception as e:
            logger.warning(f"Shared context cache read failed: {e}", extra={"phone": phone, "company_id": company_id})
            return None

    async def _set_shared(self, context: ConversationContext) -> None:
        if self.shared_cache is None:
            return
        try:
            await self.shared_cache.set_full_context(context, ttl=self.config.full_context_ttl)
        except Exception as e:
            logger.warning(f"Shared context cache write failed: {e}", extra={"phone": context.phone})

    async def _refresh_dialog(self, context: ConversationContext) -> ConversationContext:
        """Re-read the volatile portion of a stale context from the store."""
        dialog, messages, preferences = await asyncio.gather(
            self.store.get_dialog_context(context.phone, context.company_id),
            self.store.get_messages(context.phone, context.company_id, limit=self.config.messages_window),
            self.store.get_preferences(context.phone, context.company_id),
            return_exceptions=True,
        )
        refreshed = context.model_copy(deep=True)
        if isinstance(dialog, BaseException):
            logger.warning(f"Dialog refresh failed, keeping cached state: {dialog}")
        else:
            refreshed.apply_dialog(dialog or DialogContext())
        if not isinstance(messages, BaseException):
            refreshed.messages = messages
        if isinstance(preferences, ClientPreferences):
            refreshed.preferences = preferences
        refreshed.loaded_at = self._now()
        return refreshed

    async def _processing_status(self, phone: str, company_id: int) -> bool:
        if self.shared_cache is None:
            return False
        return await self.shared_cache.get_processing_status(phone, company_id)

    async def _load_cold(self, phone: str, company_id: int) -> ConversationContext:
        sources = {
            "company": self.catalog.load_company_data(company_id),
            "client": self.catalog.load_client(phone, company_id),
            "services": self.catalog.load_services(company_id),
            "staff": self.catalog.load_staff(company_id),
            "staff_schedules": self.catalog.load_staff_schedules(company_id, days=self.config.schedule_days),
            "business_stats": self.catalog.load_business_stats(company_id),
            "dialog": self.store.get_dialog_context(phone, company_id),
            "messages": self.store.get_messages(phone, company_id, limit=self.config.messages_window),
            "preferences": self.store.get_preferences(phone, company_id),
            "is_processing": self._processing_status(phone, company_id),
        }
        fallbacks: dict[str, Any] = {
            "company": {},
            "client": None,
            "services": [],
            "staff": [],
            "staff_schedules": {},
            "business_stats": {},
            "dialog": None,
            "messages": [],
            "preferences": None,
            "is_processing": False,
        }

        values = await asyncio.gather(*sources.values(), return_exceptions=True)
        loaded: dict[str, Any] = {}
        errors: dict[str, BaseException] = {}
        for name, value in zip(sources, values):
            if isinstance(value, BaseException):
                errors[name] = value
                loaded[name] = fallbacks[name]
                logger.warning(
                    f"Context source '{name}' failed: {value}",
                    extra={"phone": phone, "company_id": company_id, "source": name},
                )
            else:
                loaded[name] = value

        if "dialog" in errors and "company" in errors:
            raise ContextLoadError(phone, company_id, errors["dialog"])

        preferences = loaded["preferences"] or ClientPreferences()
        context = ConversationContext(
            phone=phone,
            company_id=company_id,
            company=loaded["company"] or {},
            client=loaded["client"],
            services=rank_services(loaded["services"], loaded["client"], preferences, loaded["business_stats"] or {}),
            staff=loaded["staff"],
            staff_schedules=loaded["staff_schedules"] or {},
            business_stats=loaded["business_stats"] or {},
            messages=loaded["messages"],
            preferences=preferences,
            is_processing=bool(loaded["is_processing"]),
            loaded_at=self._now(),
        )
        if loaded["dialog"] is not None:
            context.apply_dialog(loaded["dialog"])
        if context.client_name is None and context.client is not None:
            context.client_name = context.client.name

        logger.info(
            f"Loaded context for {context.key}",
            extra={
                "services": len(context.services),
                "staff": len(context.staff),
                "messages": len(context.messages),
                "failed_sources": sorted(errors),
            },
        )
        return context

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    async def save_context(self, phone: str, company_id: int, update: ContextUpdate) -> None:
        """
        Persist only the fields set on ``update``, then invalidate both cache tiers.

        The selection is merged into the stored one, messages are appended and
        preferences are applied as a delta.
        """
        changes: dict[str, Any] = {}
        if update.has("selection") and update.selection is not None:
            changes["selection"] = update.selection
        if update.has("client_name") and update.client_name:
            changes["client_name"] = update.client_name
        if update.has("pending_action"):
            changes["pending_action"] = update.pending_action
        if update.has("dialog_state") and update.dialog_state is not None:
            changes["state"] = update.dialog_state

        try:
            if changes:
                changes["last_activity"] = self._now()
                await self.store.update_dialog_context(phone, company_id, changes)

            if update.messages:
                await self.store.add_messages(phone, company_id, update.messages)

            if update.has("preferences") and update.preferences:
                current = await self.store.get_preferences(phone, company_id) or ClientPreferences()
                await self.store.save_preferences(phone, company_id, current.apply(update.preferences))
        finally:
            await self.invalidate_cache(phone, company_id)

    async def add_messages(self, phone: str, company_id: int, messages: list[ChatMessage]) -> None:
        await self.save_context(phone, company_id, ContextUpdate(messages=messages))

    async def save_command_context(
        self,
        phone: str,
        company_id: int,
        commands: list[Command],
        results: list[CommandResult],
    ) -> None:
        """
        Derive dialog changes from executed commands.

        Service, staff, date and time mentions go into the selection. A
        successful CREATE_BOOKING clears the dialog and updates favorites instead.
        """
        selection = DialogSelection()
        fields: dict[str, Any] = {}
        preferences_delta: dict[str, Any] = {}
        created: CommandResult | None = None

        for command, result in zip(commands, results):
            selection = selection.merge(self._selection_from_command(command))

            if not result.success:
                continue

            if command.name == CommandName.SEARCH_SLOTS.value:
                slots = (result.data or {}).get("slots") or []
                if slots and selection.staff is None and slots[0].get("staff_name"):
                    selection = selection.merge(
                        DialogSelection(staff=slots[0]["staff_name"], staff_id=slots[0].get("staff_id"))
                    )
            elif command.name == CommandName.CREATE_BOOKING.value:
                created = result
            elif command.name == CommandName.SAVE_CLIENT_NAME.value:
                fields["client_name"] = result.data["name"]
            elif command.name == CommandName.UPDATE_PREFERENCES.value:
                preferences_delta.update(result.data or {})
            elif result.type == "cancellation_selection":
                bookings = [Booking.model_validate(raw) for raw in (result.data or {}).get("bookings", [])]
                fields["pending_action"] = PendingAction(options=bookings, created_at=self._now())

        if preferences_delta:
            fields["preferences"] = preferences_delta

        if created is not None:
            if fields:
                fields.pop("pending_action", None)
                await self.save_context(phone, company_id, ContextUpdate(**fields))
            data = created.data or {}
            await self.clear_dialog_after_booking(phone, company_id, data.get("service_id"), data.get("staff_id"))
            return

        if not selection.is_empty():
            fields["selection"] = selection
            fields["dialog_state"] = DialogState.ACTIVE
        if fields:
            await self.save_context(phone, company_id, ContextUpdate(**fields))

    @staticmethod
    def _selection_from_command(command: Command) -> DialogSelection:
        def as_int(value: str | None) -> int | None:
            return int(value) if value and value.isdigit() else None

        date_value, time_value = command.get("date"), command.get("time")
        booking_datetime = command.get("datetime") or command.get("new_datetime")
        if booking_datetime:
            parts = booking_datetime.replace("T", " ").split()
            date_value = date_value or parts[0]
            if len(parts) > 1:
                time_value = time_value or parts[1][:5]

        return DialogSelection(
            service=command.get("service_name") or command.get("service"),
            service_id=as_int(command.get("service_id")),
            staff=command.get("staff_name") or command.get("staff"),
            staff_id=as_int(command.get("staff_id")),
            date=date_value,
            time=time_value,
        )

    async def clear_dialog_after_booking(
        self,
        phone: str,
        company_id: int,
        service_id: int | None = None,
        staff_id: int | None = None,
    ) -> None:
        """Drop the finished dialog and remember what was booked."""
        try:
            await self.store.clear_dialog_context(phone, company_id)
            preferences = await self.store.get_preferences(phone, company_id) or ClientPreferences()
            preferences.record_booking(service_id, staff_id)
            await self.store.save_preferences(phone, company_id, preferences)
        finally:
            await self.invalidate_cache(phone, company_id)

        logger.info(
            f"Dialog cleared after booking for {phone}@{company_id}",
            extra={"service_id": service_id, "staff_id": staff_id},
        )

    async def handle_pending_action(self, context: ConversationContext, message: str) -> Booking | None:
        """
        Resolve a pending selection with the client's reply.

        The pending action is cleared either way; an out-of-range or non-numeric
        reply returns None so the message is processed normally.
        """
        pending = context.pending_action
        if pending is None:
            return None

        chosen = pending.resolve(message)
        context.pending_action = None
        await self.save_context(context.phone, context.company_id, ContextUpdate(pending_action=None))

        if chosen is None:
            logger.info(f"Pending {pending.type} dropped for {context.key}: reply '{message[:20]}'")
        return chosen

    async def set_processing_status(self, phone: str, company_id: int, is_processing: bool) -> None:
        if self.shared_cache is None:
            return
        try:
            await self.shared_cache.set_processing_status(phone, company_id, is_processing)
        except Exception as e:
            logger.warning(f"Failed to set processing status: {e}", extra={"phone": phone})

    async def invalidate_cache(self, phone: str, company_id: int) -> None:
        """Drop the context from both cache tiers."""
        self.memory_cache.delete(self._key(phone, company_id))
        if self.shared_cache is None:
            return
        try:
            await self.shared_cache.invalidate_full_context(phone, company_id)
        except Exception as e:
            logger.warning(f"Shared context invalidation failed: {e}", extra={"phone": phone})

# ============================================================================
# SCOPE: APPLICATION LAYER (Salon Booking)
# Description: Conversation context persistence ports (durable + shared cache).
# ============================================================================
"""Context Store Ports.

Segregated interfaces:
- IDialogContextStore: authoritative store of dialog state, history and preferences
- ISharedContextCache: cross-process cache of fully assembled contexts
"""

from typing import Any, Protocol, runtime_checkable

from ...domain.entities import ChatMessage, ClientPreferences, ConversationContext, DialogContext


@runtime_checkable
class IDialogContextStore(Protocol):
    """Durable dialog context store. No TTL; the source of truth.

    Implementations: SqlAlchemyDialogContextStore
    """

    async def get_dialog_context(self, phone: str, company_id: int) -> DialogContext | None:
        ...

    async def update_dialog_context(self, phone: str, company_id: int, changes: dict[str, Any]) -> None:
        """Write only the keys present in ``changes``.

        Keys: ``selection`` (merged into the stored one), ``client_name``,
        ``pending_action`` (None clears), ``state``, ``last_activity``.
        """
        ...

    async def clear_dialog_context(self, phone: str, company_id: int) -> None:
        """Drop selection and pending action; keep client name and preferences."""
        ...

    async def add_messages(self, phone: str, company_id: int, messages: list[ChatMessage]) -> None:
        ...

    async def get_messages(self, phone: str, company_id: int, limit: int = 20) -> list[ChatMessage]:
        ...

    async def get_preferences(self, phone: str, company_id: int) -> ClientPreferences | None:
        ...

    async def save_preferences(self, phone: str, company_id: int, preferences: ClientPreferences) -> None:
        ...


@runtime_checkable
class ISharedContextCache(Protocol):
    """Shared full-context cache.

    Implementations: RedisSharedContextCache
    """

    async def get_full_context(self, phone: str, company_id: int) -> ConversationContext | None:
        ...

    async def set_full_context(self, context: ConversationContext, ttl: int | None = None) -> None:
        ...

    async def invalidate_full_context(self, phone: str, company_id: int) -> None:
        ...

    async def get_processing_status(self, phone: str, company_id: int) -> bool:
        ...

    async def set_processing_status(self, phone: str, company_id: int, is_processing: bool) -> None:
        ...

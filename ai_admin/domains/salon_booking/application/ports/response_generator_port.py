# ============================================================================
# SCOPE: APPLICATION LAYER (Salon Booking)
# Description: Port to the upstream AI text generator.
# ============================================================================
"""Response Generator Port."""

from typing import Protocol, runtime_checkable

from ...domain.entities import ConversationContext


@runtime_checkable
class IResponseGenerator(Protocol):
    """Produces assistant text (with embedded ``[COMMAND ...]`` tokens) for a message."""

    async def generate(self, message: str, context: ConversationContext) -> str:
        ...

"""
Dialog Context Store

PostgreSQL implementation of IDialogContextStore. One row per (phone, company)
holds the dialog state and preferences; messages live in their own table and
are capped per conversation.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ai_admin.database import session_scope
from ai_admin.models.db import DialogContextRecord, DialogMessageRecord

from ....domain.entities import (
    ChatMessage,
    ClientPreferences,
    DialogContext,
    DialogSelection,
    DialogState,
    PendingAction,
)

logger = logging.getLogger(__name__)


class SqlAlchemyDialogContextStore:
    """
    Durable dialog store on SQLAlchemy async sessions.

    Lifetimes are applied on read: a selection and pending action idle longer
    than ``selection_ttl`` come back empty, messages older than ``messages_ttl``
    are skipped and preferences not written for ``preferences_ttl`` are dropped.
    Dialog writes do not extend the preferences lifetime.
    None disables a lifetime.

    Example:
        ```python
        store = SqlAlchemyDialogContextStore(create_session_factory(engine), selection_ttl=7200)
        await store.update_dialog_context(phone, company_id, {"client_name": "Anna"})
        ```
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_messages: int = 50,
        selection_ttl: int | None = None,
        messages_ttl: int | None = None,
        preferences_ttl: int | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.session_factory = session_factory
        self.max_messages = max_messages
        self.selection_ttl = selection_ttl
        self.messages_ttl = messages_ttl
        self.preferences_ttl = preferences_ttl
        self._now = now

    def _expired(self, moment: datetime | None, ttl: int | None) -> bool:
        if ttl is None or moment is None:
            return False
        return self._now() - moment > timedelta(seconds=ttl)

    @staticmethod
    async def _find(session: AsyncSession, phone: str, company_id: int) -> DialogContextRecord | None:
        result = await session.execute(
            select(DialogContextRecord).where(
                DialogContextRecord.phone == phone,
                DialogContextRecord.company_id == company_id,
            )
        )
        return result.scalar_one_or_none()

    async def _get_or_create(self, session: AsyncSession, phone: str, company_id: int) -> DialogContextRecord:
        record = await self._find(session, phone, company_id)
        if record is None:
            record = DialogContextRecord(phone=phone, company_id=company_id, selection={}, preferences={}, state="idle")
            session.add(record)
            await session.flush()
        return record

    async def get_dialog_context(self, phone: str, company_id: int) -> DialogContext | None:
        async with session_scope(self.session_factory) as session:
            record = await self._find(session, phone, company_id)
            if record is None:
                return None
            if self._expired(record.last_activity, self.selection_ttl):
                logger.debug(f"Dialog selection for {phone}@{company_id} expired")
                return DialogContext(client_name=record.client_name, last_activity=record.last_activity)
            return DialogContext(
                selection=DialogSelection.model_validate(record.selection or {}),
                pending_action=PendingAction.model_validate(record.pending_action) if record.pending_action else None,
                client_name=record.client_name,
                state=DialogState(record.state),
                last_activity=record.last_activity,
            )

    async def update_dialog_context(self, phone: str, company_id: int, changes: dict[str, Any]) -> None:
        async with session_scope(self.session_factory) as session:
            record = await self._get_or_create(session, phone, company_id)

            if "selection" in changes:
                current = DialogSelection.model_validate(record.selection or {})
                record.selection = current.merge(changes["selection"]).model_dump(mode="json")
            if "client_name" in changes:
                record.client_name = changes["client_name"]
            if "pending_action" in changes:
                pending = changes["pending_action"]
                record.pending_action = pending.model_dump(mode="json") if pending is not None else None
            if "state" in changes:
                record.state = DialogState(changes["state"]).value
            if "last_activity" in changes:
                record.last_activity = changes["last_activity"]

        logger.debug(f"Dialog context updated for {phone}@{company_id}", extra={"fields": sorted(changes)})

    async def clear_dialog_context(self, phone: str, company_id: int) -> None:
        async with session_scope(self.session_factory) as session:
            record = await self._find(session, phone, company_id)
            if record is None:
                return
            record.selection = {}
            record.pending_action = None
            record.state = DialogState.IDLE.value
            record.last_activity = datetime.now(UTC)

    async def add_messages(self, phone: str, company_id: int, messages: list[ChatMessage]) -> None:
        if not messages:
            return
        async with session_scope(self.session_factory) as session:
            session.add_all(
                DialogMessageRecord(
                    phone=phone,
                    company_id=company_id,
                    role=message.role,
                    content=message.content,
                    created_at=message.timestamp,
                )
                for message in messages
            )
            await session.flush()

            # Keep only the newest max_messages
            keep = (
                select(DialogMessageRecord.id)
                .where(DialogMessageRecord.phone == phone, DialogMessageRecord.company_id == company_id)
                .order_by(DialogMessageRecord.id.desc())
                .limit(self.max_messages)
            )
            await session.execute(
                delete(DialogMessageRecord).where(
                    DialogMessageRecord.phone == phone,
                    DialogMessageRecord.company_id == company_id,
                    DialogMessageRecord.id.not_in(keep.scalar_subquery()),
                )
            )

    async def get_messages(self, phone: str, company_id: int, limit: int = 20) -> list[ChatMessage]:
        """Newest ``limit`` messages in chronological order."""
        query = select(DialogMessageRecord).where(
            DialogMessageRecord.phone == phone,
            DialogMessageRecord.company_id == company_id,
        )
        if self.messages_ttl is not None:
            query = query.where(DialogMessageRecord.created_at >= self._now() - timedelta(seconds=self.messages_ttl))

        async with session_scope(self.session_factory) as session:
            result = await session.execute(query.order_by(DialogMessageRecord.id.desc()).limit(limit))
            records = list(result.scalars().all())

        return [
            ChatMessage(role=record.role, content=record.content, timestamp=record.created_at)
            for record in reversed(records)
        ]

    async def get_preferences(self, phone: str, company_id: int) -> ClientPreferences | None:
        async with session_scope(self.session_factory) as session:
            record = await self._find(session, phone, company_id)
            if record is None or not record.preferences:
                return None
            if self._expired(record.preferences_updated_at, self.preferences_ttl):
                return None
            try:
                return ClientPreferences.model_validate(record.preferences)
            except ValidationError as e:
                logger.warning(f"Dropping unreadable preferences for {phone}@{company_id}: {e}")
                return None

    async def save_preferences(self, phone: str, company_id: int, preferences: ClientPreferences) -> None:
        async with session_scope(self.session_factory) as session:
            record = await self._get_or_create(session, phone, company_id)
            record.preferences = preferences.model_dump(mode="json")
            record.preferences_updated_at = self._now()

"""Conversation Context Entities.

Per-(phone, company) conversation state. The volatile dialog portion (selection,
pending action) is separated from long-lived client preferences so a finished
booking can clear one without touching the other.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from .booking import Booking
from .catalog import ClientInfo, Service, StaffMember


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DialogState(str, Enum):
    """Dialog activity state."""

    ACTIVE = "active"
    IDLE = "idle"


class DialogSelection(BaseModel):
    """What the client has picked so far in the current dialog."""

    service: str | None = None
    service_id: int | None = None
    staff: str | None = None
    staff_id: int | None = None
    date: str | None = None
    time: str | None = None

    def merge(self, other: "DialogSelection") -> "DialogSelection":
        """Return a copy where every non-empty field of ``other`` wins."""
        updates = {key: value for key, value in other.model_dump().items() if value is not None}
        return self.model_copy(update=updates)

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class PendingAction(BaseModel):
    """An action waiting for the client's numeric reply (e.g. which booking to cancel)."""

    type: Literal["cancellation"] = "cancellation"
    options: list[Booking] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    def resolve(self, reply: str) -> Booking | None:
        """Return the option picked by a 1-based numeric reply, or None."""
        text = reply.strip()
        if not text.isdigit():
            return None
        index = int(text)
        if 1 <= index <= len(self.options):
            return self.options[index - 1]
        return None


class ChatMessage(BaseModel):
    """One message of the conversation history."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ClientPreferences(BaseModel):
    """Long-lived personalization; survives dialog clears."""

    favorite_service_id: int | None = None
    favorite_staff_id: int | None = None
    service_usage: dict[str, int] = Field(default_factory=dict)
    staff_usage: dict[str, int] = Field(default_factory=dict)
    notes: dict[str, Any] = Field(default_factory=dict)

    def record_booking(self, service_id: int | None, staff_id: int | None) -> None:
        """Update favorites and usage counters after a successful booking."""
        if service_id is not None:
            self.favorite_service_id = service_id
            key = str(service_id)
            self.service_usage[key] = self.service_usage.get(key, 0) + 1
        if staff_id is not None:
            self.favorite_staff_id = staff_id
            key = str(staff_id)
            self.staff_usage[key] = self.staff_usage.get(key, 0) + 1

    def apply(self, delta: dict[str, Any]) -> "ClientPreferences":
        """Return a validated copy with ``delta`` applied; unknown keys go to ``notes``.

        Raises:
            pydantic.ValidationError: A known field got a value of the wrong type
        """
        known = {key: value for key, value in delta.items() if key in type(self).model_fields}
        extra = {key: value for key, value in delta.items() if key not in type(self).model_fields}
        updated = type(self).model_validate({**self.model_dump(), **known})
        if extra:
            updated.notes = {**updated.notes, **extra}
        return updated


class DialogContext(BaseModel):
    """Volatile dialog state as kept by the durable store."""

    selection: DialogSelection = Field(default_factory=DialogSelection)
    pending_action: PendingAction | None = None
    client_name: str | None = None
    state: DialogState = DialogState.IDLE
    last_activity: datetime | None = None


class ConversationContext(BaseModel):
    """Everything the pipeline knows about one conversation."""

    phone: str
    company_id: int

    # Volatile dialog state
    current_selection: DialogSelection = Field(default_factory=DialogSelection)
    pending_action: PendingAction | None = None
    dialog_state: DialogState = DialogState.IDLE
    last_activity: datetime | None = None
    client_name: str | None = None

    # Enrichment, loaded not owned
    company: dict[str, Any] = Field(default_factory=dict)
    services: list[Service] = Field(default_factory=list)
    staff: list[StaffMember] = Field(default_factory=list)
    staff_schedules: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    client: ClientInfo | None = None
    business_stats: dict[str, Any] = Field(default_factory=dict)
    messages: list[ChatMessage] = Field(default_factory=list)
    preferences: ClientPreferences = Field(default_factory=ClientPreferences)
    is_processing: bool = False

    loaded_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> str:
        return f"{self.phone}@{self.company_id}"

    @property
    def is_new_client(self) -> bool:
        return self.client is None

    def is_fresh(self, max_age_seconds: float, now: datetime | None = None) -> bool:
        """Whether the volatile state is young enough to be trusted without re-reading the store."""
        now = now or _utcnow()
        return now - self.loaded_at < timedelta(seconds=max_age_seconds)

    def apply_dialog(self, dialog: DialogContext) -> None:
        """Overwrite the volatile portion with the store's copy."""
        self.current_selection = dialog.selection
        self.pending_action = dialog.pending_action
        self.dialog_state = dialog.state
        self.last_activity = dialog.last_activity
        if dialog.client_name:
            self.client_name = dialog.client_name

    def find_service(self, mention: str) -> Service | None:
        """First service whose title contains ``mention`` (case-insensitive)."""
        needle = mention.strip().lower()
        if not needle:
            return None
        return next((s for s in self.services if needle in s.title.lower()), None)

    def find_staff(self, mention: str) -> StaffMember | None:
        """First staff member whose name contains ``mention`` (case-insensitive)."""
        needle = mention.strip().lower()
        if not needle:
            return None
        return next((m for m in self.staff if needle in m.name.lower()), None)

    def get_service(self, service_id: int) -> Service | None:
        return next((s for s in self.services if s.id == service_id), None)

    def get_staff(self, staff_id: int) -> StaffMember | None:
        return next((m for m in self.staff if m.id == staff_id), None)


class ContextUpdate(BaseModel):
    """Partial update for ``save_context``.

    Only fields explicitly set by the caller are persisted; passing
    ``pending_action=None`` clears it, omitting it leaves it alone.
    """

    selection: DialogSelection | None = None
    client_name: str | None = None
    pending_action: PendingAction | None = None
    dialog_state: DialogState | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    preferences: dict[str, Any] | None = None

    def has(self, field_name: str) -> bool:
        return field_name in self.model_fields_set

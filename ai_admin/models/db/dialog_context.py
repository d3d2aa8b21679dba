"""
SQLAlchemy models for durable dialog state.

Tables:
- dialog_contexts: selection, pending action, client name and preferences per (phone, company)
- dialog_messages: conversation history
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB

from ai_admin.models.db.base import Base, TimestampMixin


class DialogContextRecord(Base, TimestampMixin):
    """
    Volatile dialog state plus long-lived preferences for one conversation.

    The selection and pending action are cleared after a booking; preferences
    and the client name survive.
    """

    __tablename__ = "dialog_contexts"
    __table_args__ = (UniqueConstraint("phone", "company_id", name="uq_dialog_contexts_phone_company"),)

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    phone = Column(String(32), nullable=False, index=True, comment="Normalized phone (7XXXXXXXXXX)")
    company_id = Column(Integer, nullable=False)

    selection = Column(JSONB, nullable=False, default=dict, comment="Service/staff/date/time picked so far")
    pending_action = Column(JSONB, nullable=True, comment="Action awaiting a numeric reply")
    client_name = Column(String(255), nullable=True)
    state = Column(String(20), nullable=False, default="idle")
    last_activity = Column(DateTime(timezone=True), nullable=True)
    preferences = Column(JSONB, nullable=False, default=dict)
    preferences_updated_at = Column(DateTime(timezone=True), nullable=True, comment="Last preferences write")

    def __repr__(self) -> str:
        return f"<DialogContextRecord(phone='{self.phone}', company_id={self.company_id}, state='{self.state}')>"


class DialogMessageRecord(Base):
    """One message of a conversation."""

    __tablename__ = "dialog_messages"
    __table_args__ = (Index("ix_dialog_messages_conversation", "phone", "company_id", "id"),)

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    phone = Column(String(32), nullable=False)
    company_id = Column(Integer, nullable=False)
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

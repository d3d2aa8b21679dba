"""SQLAlchemy models."""

from ai_admin.models.db.base import Base, TimestampMixin
from ai_admin.models.db.dialog_context import DialogContextRecord, DialogMessageRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "DialogContextRecord",
    "DialogMessageRecord",
]

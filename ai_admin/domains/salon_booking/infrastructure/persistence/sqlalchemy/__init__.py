"""SQLAlchemy persistence for salon booking."""

from .dialog_context_store import SqlAlchemyDialogContextStore

__all__ = ["SqlAlchemyDialogContextStore"]

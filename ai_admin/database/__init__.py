"""Database engine and sessions."""

from ai_admin.database.async_db import create_async_database_engine, create_session_factory, session_scope

__all__ = ["create_async_database_engine", "create_session_factory", "session_scope"]

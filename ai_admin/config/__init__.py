"""
Configuration Module

Application configuration settings.
"""

from ai_admin.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]

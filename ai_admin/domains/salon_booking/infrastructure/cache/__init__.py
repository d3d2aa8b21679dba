"""Redis adapters for salon booking."""

from .redis_context_cache import RedisSharedContextCache
from .redis_ownership_store import RedisBookingOwnershipStore

__all__ = ["RedisBookingOwnershipStore", "RedisSharedContextCache"]

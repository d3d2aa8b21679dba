"""
Redis Shared Context Cache

Full conversation contexts shared between worker processes.

Redis Key Pattern:
    full_ctx:{company_id}:{phone}      ConversationContext JSON, TTL 12h
    processing:{company_id}:{phone}    "1" while a message is being handled, TTL 5min
"""

import logging

import redis.asyncio as aioredis
from pydantic import ValidationError

from ...domain.entities import ConversationContext

logger = logging.getLogger(__name__)

DEFAULT_FULL_CONTEXT_TTL = 12 * 3600
DEFAULT_PROCESSING_TTL = 300


class RedisSharedContextCache:
    """
    ISharedContextCache on redis.asyncio.

    Best effort: Redis errors are logged and reads degrade to a miss, so the
    caller falls through to the durable store.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        default_ttl: int = DEFAULT_FULL_CONTEXT_TTL,
        processing_ttl: int = DEFAULT_PROCESSING_TTL,
    ):
        self.redis = redis_client
        self.default_ttl = default_ttl
        self.processing_ttl = processing_ttl

    @staticmethod
    def _context_key(phone: str, company_id: int) -> str:
        return f"full_ctx:{company_id}:{phone}"

    @staticmethod
    def _processing_key(phone: str, company_id: int) -> str:
        return f"processing:{company_id}:{phone}"

    async def get_full_context(self, phone: str, company_id: int) -> ConversationContext | None:
        key = self._context_key(phone, company_id)
        try:
            data = await self.redis.get(key)
        except aioredis.RedisError as e:
            logger.error(f"Error reading context from Redis: {e}", extra={"key": key})
            return None

        if not data:
            return None
        try:
            return ConversationContext.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Dropping unreadable cached context {key}: {e}")
            await self.invalidate_full_context(phone, company_id)
            return None

    async def set_full_context(self, context: ConversationContext, ttl: int | None = None) -> None:
        key = self._context_key(context.phone, context.company_id)
        try:
            await self.redis.set(key, context.model_dump_json(), ex=ttl or self.default_ttl)
        except aioredis.RedisError as e:
            logger.error(f"Error saving context to Redis: {e}", extra={"key": key})

    async def invalidate_full_context(self, phone: str, company_id: int) -> None:
        try:
            await self.redis.delete(self._context_key(phone, company_id))
        except aioredis.RedisError as e:
            logger.error(f"Error invalidating context in Redis: {e}")

    async def get_processing_status(self, phone: str, company_id: int) -> bool:
        try:
            return bool(await self.redis.exists(self._processing_key(phone, company_id)))
        except aioredis.RedisError as e:
            logger.error(f"Error reading processing status from Redis: {e}")
            return False

    async def set_processing_status(self, phone: str, company_id: int, is_processing: bool) -> None:
        key = self._processing_key(phone, company_id)
        try:
            if is_processing:
                await self.redis.set(key, "1", ex=self.processing_ttl)
            else:
                await self.redis.delete(key)
        except aioredis.RedisError as e:
            logger.error(f"Error updating processing status in Redis: {e}")

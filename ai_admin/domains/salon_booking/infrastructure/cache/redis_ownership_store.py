"""
Redis Booking Ownership Store

Redis Key Pattern:
    bookings:active:{phone}    SET of booking ids created from this phone
    booking:owner:{id}         JSON {"phone": ..., "created_at": ..., **data}
    TTL: 7 days on both
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

DEFAULT_OWNERSHIP_TTL = 7 * 24 * 3600


class RedisBookingOwnershipStore:
    """
    IBookingOwnershipStore on redis.asyncio.

    Redis errors propagate; the booking service falls back to the CRM's own
    list of the client's bookings.
    """

    def __init__(self, redis_client: aioredis.Redis, ttl: int = DEFAULT_OWNERSHIP_TTL):
        self.redis = redis_client
        self.ttl = ttl

    @staticmethod
    def _active_key(phone: str) -> str:
        return f"bookings:active:{phone}"

    @staticmethod
    def _owner_key(booking_id: int) -> str:
        return f"booking:owner:{booking_id}"

    async def add_booking(self, phone: str, booking_id: int, data: dict[str, Any] | None = None) -> bool:
        record = {"phone": phone, "created_at": datetime.now(UTC).isoformat(), **(data or {})}
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.sadd(self._active_key(phone), str(booking_id))
            pipe.expire(self._active_key(phone), self.ttl)
            pipe.set(self._owner_key(booking_id), json.dumps(record, ensure_ascii=False), ex=self.ttl)
            await pipe.execute()

        logger.info(f"Booking {booking_id} registered for {phone}", extra={"booking_id": booking_id})
        return True

    async def remove_booking(self, phone: str, booking_id: int) -> bool:
        removed = await self.redis.srem(self._active_key(phone), str(booking_id))
        owner = await self._get_owner(booking_id)
        if owner is not None and owner.get("phone") == phone:
            await self.redis.delete(self._owner_key(booking_id))
        return bool(removed)

    async def _get_owner(self, booking_id: int) -> dict[str, Any] | None:
        raw = await self.redis.get(self._owner_key(booking_id))
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Unreadable owner record for booking {booking_id}")
            return None

    async def is_owner(self, phone: str, booking_id: int) -> bool:
        owner = await self._get_owner(booking_id)
        if owner is not None:
            return owner.get("phone") == phone
        return bool(await self.redis.sismember(self._active_key(phone), str(booking_id)))

    async def get_active_bookings(self, phone: str) -> list[int]:
        members = await self.redis.smembers(self._active_key(phone))
        return sorted(int(member) for member in members)

"""
Unit tests for the Redis adapters.

The redis client is an AsyncMock; tests check key layout, TTLs and how each
adapter treats Redis failures.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ai_admin.domains.salon_booking.domain.entities import ConversationContext
from ai_admin.domains.salon_booking.infrastructure.cache import (
    RedisBookingOwnershipStore,
    RedisSharedContextCache,
)
from tests.utils import COMPANY_ID, PHONE

CONTEXT_KEY = f"full_ctx:{COMPANY_ID}:{PHONE}"
PROCESSING_KEY = f"processing:{COMPANY_ID}:{PHONE}"


@pytest.fixture
def redis_client() -> AsyncMock:
    return AsyncMock()


# ============================================================================
# SHARED CONTEXT CACHE
# ============================================================================


class TestRedisSharedContextCache:
    @pytest.mark.asyncio
    async def test_set_and_get(self, redis_client, context) -> None:
        cache = RedisSharedContextCache(redis_client, default_ttl=600)

        await cache.set_full_context(context)

        redis_client.set.assert_awaited_once()
        key, payload = redis_client.set.await_args.args
        assert key == CONTEXT_KEY
        assert redis_client.set.await_args.kwargs == {"ex": 600}

        redis_client.get.return_value = payload
        loaded = await cache.get_full_context(PHONE, COMPANY_ID)
        assert loaded.model_dump() == context.model_dump()

    @pytest.mark.asyncio
    async def test_explicit_ttl(self, redis_client, context) -> None:
        await RedisSharedContextCache(redis_client).set_full_context(context, ttl=30)
        assert redis_client.set.await_args.kwargs == {"ex": 30}

    @pytest.mark.asyncio
    async def test_miss(self, redis_client) -> None:
        redis_client.get.return_value = None
        assert await RedisSharedContextCache(redis_client).get_full_context(PHONE, COMPANY_ID) is None

    @pytest.mark.asyncio
    async def test_unreadable_entry_is_dropped(self, redis_client) -> None:
        redis_client.get.return_value = b'{"phone": 1}'

        result = await RedisSharedContextCache(redis_client).get_full_context(PHONE, COMPANY_ID)

        assert result is None
        redis_client.delete.assert_awaited_once_with(CONTEXT_KEY)

    @pytest.mark.asyncio
    async def test_redis_errors_degrade(self, redis_client, context) -> None:
        error = RedisConnectionError("down")
        redis_client.get.side_effect = error
        redis_client.set.side_effect = error
        redis_client.delete.side_effect = error
        redis_client.exists.side_effect = error
        cache = RedisSharedContextCache(redis_client)

        assert await cache.get_full_context(PHONE, COMPANY_ID) is None
        await cache.set_full_context(context)
        await cache.invalidate_full_context(PHONE, COMPANY_ID)
        assert await cache.get_processing_status(PHONE, COMPANY_ID) is False
        await cache.set_processing_status(PHONE, COMPANY_ID, True)

    @pytest.mark.asyncio
    async def test_processing_status(self, redis_client) -> None:
        cache = RedisSharedContextCache(redis_client, processing_ttl=120)

        await cache.set_processing_status(PHONE, COMPANY_ID, True)
        redis_client.set.assert_awaited_once_with(PROCESSING_KEY, "1", ex=120)

        await cache.set_processing_status(PHONE, COMPANY_ID, False)
        redis_client.delete.assert_awaited_once_with(PROCESSING_KEY)

        redis_client.exists.return_value = 1
        assert await cache.get_processing_status(PHONE, COMPANY_ID) is True


# ============================================================================
# OWNERSHIP STORE
# ============================================================================


@pytest.fixture
def pipe() -> MagicMock:
    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.execute = AsyncMock(return_value=[1, True, True])
    return pipe


class TestRedisBookingOwnershipStore:
    @pytest.mark.asyncio
    async def test_add_booking_uses_one_transaction(self, redis_client, pipe) -> None:
        redis_client.pipeline = MagicMock(return_value=pipe)
        store = RedisBookingOwnershipStore(redis_client, ttl=100)

        assert await store.add_booking(PHONE, 123, {"staff_id": 1}) is True

        redis_client.pipeline.assert_called_once_with(transaction=True)
        pipe.sadd.assert_called_once_with(f"bookings:active:{PHONE}", "123")
        pipe.expire.assert_called_once_with(f"bookings:active:{PHONE}", 100)
        key, raw = pipe.set.call_args.args
        record = json.loads(raw)
        assert key == "booking:owner:123"
        assert (record["phone"], record["staff_id"]) == (PHONE, 1)
        assert "created_at" in record
        assert pipe.set.call_args.kwargs == {"ex": 100}
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_owner_record_decides(self, redis_client) -> None:
        redis_client.get.return_value = json.dumps({"phone": "70000000000"})
        store = RedisBookingOwnershipStore(redis_client)

        assert await store.is_owner(PHONE, 123) is False
        redis_client.sismember.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_to_active_set(self, redis_client) -> None:
        redis_client.get.return_value = None
        redis_client.sismember.return_value = 1

        assert await RedisBookingOwnershipStore(redis_client).is_owner(PHONE, 123) is True
        redis_client.sismember.assert_awaited_once_with(f"bookings:active:{PHONE}", "123")

    @pytest.mark.asyncio
    async def test_remove_booking(self, redis_client) -> None:
        redis_client.srem.return_value = 1
        redis_client.get.return_value = json.dumps({"phone": PHONE})

        assert await RedisBookingOwnershipStore(redis_client).remove_booking(PHONE, 123) is True
        redis_client.delete.assert_awaited_once_with("booking:owner:123")

    @pytest.mark.asyncio
    async def test_remove_keeps_foreign_owner_record(self, redis_client) -> None:
        redis_client.srem.return_value = 0
        redis_client.get.return_value = json.dumps({"phone": "70000000000"})

        assert await RedisBookingOwnershipStore(redis_client).remove_booking(PHONE, 123) is False
        redis_client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_active_bookings_sorted(self, redis_client) -> None:
        redis_client.smembers.return_value = {b"12", b"3"}
        assert await RedisBookingOwnershipStore(redis_client).get_active_bookings(PHONE) == [3, 12]

    @pytest.mark.asyncio
    async def test_redis_errors_propagate(self, redis_client) -> None:
        redis_client.get.side_effect = RedisConnectionError("down")

        with pytest.raises(RedisConnectionError):
            await RedisBookingOwnershipStore(redis_client).is_owner(PHONE, 123)


def test_context_round_trips_through_json(context) -> None:
    assert ConversationContext.model_validate_json(context.model_dump_json()).model_dump() == context.model_dump()

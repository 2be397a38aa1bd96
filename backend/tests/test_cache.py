"""Tests for the Redis read-through cache."""

import pytest
import redis.asyncio as redis
from sqlalchemy import update

from jobflow.models.product import Product
from jobflow.services import inventory
from jobflow.utils import cache
from jobflow.utils.cache import cache_key, cached, invalidate_cache


@pytest.mark.cache
@pytest.mark.asyncio
class TestCacheUtility:
    """Test cache utility functions."""

    async def test_get_redis(self, redis_client):
        client = await cache.get_redis()
        assert await client.ping() is True

    async def test_cache_key_generation(self):
        key1 = cache_key(q="pad", limit=20)
        key2 = cache_key(limit=20, q="pad")
        key3 = cache_key(q="pad", limit=50)

        assert key1 == key2
        assert key1 != key3
        assert cache_key() == "default"

    async def test_cached_decorator(self, redis_client):
        call_count = 0

        @cached(ttl=10, prefix="test")
        async def expensive_function(*, code: str, limit: int):
            nonlocal call_count
            call_count += 1
            return {"result": f"{code}:{limit}"}

        assert await expensive_function(code="A", limit=1) == {"result": "A:1"}
        assert call_count == 1

        # Served from cache
        assert await expensive_function(code="A", limit=1) == {"result": "A:1"}
        assert call_count == 1

        assert await expensive_function(code="B", limit=1) == {"result": "B:1"}
        assert call_count == 2
        assert all(k.startswith("test:expensive_function:") for k in redis_client.store)

    async def test_injected_objects_do_not_split_the_key(self, redis_client):
        calls = []

        @cached(ttl=10, prefix="test")
        async def lookup(*, db, q: str):
            calls.append(db)
            return [q]

        await lookup(db=object(), q="x")
        await lookup(db=object(), q="x")
        assert len(calls) == 1

    async def test_cache_invalidation(self, redis_client):
        await redis_client.set("test:func1:abc123", "value1")
        await redis_client.set("test:func2:def456", "value2")
        await redis_client.set("other:func:xyz789", "value3")

        await invalidate_cache("test:*")

        assert list(redis_client.store) == ["other:func:xyz789"]

    async def test_redis_down_falls_back_to_function(self, monkeypatch):
        async def broken():
            raise redis.ConnectionError("connection refused")

        monkeypatch.setattr(cache, "get_redis", broken)
        calls = 0

        @cached(ttl=10, prefix="test")
        async def fetch(*, q: str):
            nonlocal calls
            calls += 1
            return q

        assert await fetch(q="a") == "a"
        assert await fetch(q="a") == "a"
        assert calls == 2

        # Invalidation logs and carries on
        await invalidate_cache("test:*")


@pytest.mark.cache
@pytest.mark.integration
@pytest.mark.asyncio
class TestProductSearchCache:

    async def test_search_is_cached_until_invalidated(self, db_session, product, redis_client):
        first = await inventory.search_products(db=db_session, q="brake")
        assert [p["code"] for p in first] == ["BRK-PAD-01"]
        assert first[0]["stock_quantity"] == 20

        await db_session.execute(
            update(Product).where(Product.id == product.id).values(stock_quantity=3)
        )
        await db_session.commit()

        cached_result = await inventory.search_products(db=db_session, q="brake")
        assert cached_result[0]["stock_quantity"] == 20

        await invalidate_cache("products:*")
        fresh = await inventory.search_products(db=db_session, q="brake")
        assert fresh[0]["stock_quantity"] == 3

    async def test_search_matches_name(self, db_session, product):
        assert len(await inventory.search_products(db=db_session, q="pads")) == 1
        assert await inventory.search_products(db=db_session, q="wiper") == []

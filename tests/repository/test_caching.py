"""
Tests for query result caching.

This module tests:
1. InMemoryCacheProvider expiry and counters
2. QueryCache keys, metrics and invalidation
3. Repositories reading through the cache
"""

import asyncio
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from pydantic import BaseModel
from ulid import ULID

from repokit.repository import (
    ContextRepository,
    InMemoryCacheProvider,
    QueryCache,
    QueryOptions,
    RepositoryOptions,
    RepositoryOptionsBuilder,
    where,
)
from repokit.repository.memory import drop_database


class User(BaseModel):
    id: int
    name: str


class Team(BaseModel):
    id: int
    name: str


class TestInMemoryCacheProvider:
    # ==================== Entries ====================

    @pytest.mark.asyncio
    async def test_miss_then_hit(self) -> None:
        provider = InMemoryCacheProvider()

        assert await provider.try_get("key") == (False, None)
        await provider.set("key", [1, 2])
        assert await provider.try_get("key") == (True, [1, 2])

    @pytest.mark.asyncio
    async def test_cached_none_is_a_hit(self) -> None:
        provider = InMemoryCacheProvider()
        await provider.set("key", None)

        assert await provider.try_get("key") == (True, None)

    @pytest.mark.asyncio
    async def test_hit_returns_the_cached_object(self) -> None:
        provider = InMemoryCacheProvider()
        value = [User(id=1, name="Alice")]
        await provider.set("key", value)

        _, cached = await provider.try_get("key")

        assert cached is value

    @pytest.mark.asyncio
    async def test_default_expiry(self) -> None:
        provider = InMemoryCacheProvider(expiry=0.05)
        await provider.set("key", "value")

        assert await provider.try_get("key") == (True, "value")
        await asyncio.sleep(0.1)
        assert await provider.try_get("key") == (False, None)

    @pytest.mark.asyncio
    async def test_entry_expiry_overrides_default(self) -> None:
        provider = InMemoryCacheProvider(expiry=60)
        await provider.set("short", "value", expiry=0.05)
        await provider.set("long", "value")

        await asyncio.sleep(0.1)

        assert await provider.try_get("short") == (False, None)
        assert await provider.try_get("long") == (True, "value")

    @pytest.mark.asyncio
    async def test_remove(self) -> None:
        provider = InMemoryCacheProvider()
        await provider.set("key", "value")

        await provider.remove("key")
        await provider.remove("missing")

        assert await provider.try_get("key") == (False, None)

    @pytest.mark.asyncio
    async def test_providers_do_not_share_entries(self) -> None:
        first, second = InMemoryCacheProvider(), InMemoryCacheProvider()
        await first.set("key", "value")

        assert await second.try_get("key") == (False, None)

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        provider = InMemoryCacheProvider()
        await provider.set("key", "value")

        await provider.clear()

        assert await provider.try_get("key") == (False, None)

    # ==================== Counters ====================

    @pytest.mark.asyncio
    async def test_increment_creates_with_default(self) -> None:
        provider = InMemoryCacheProvider()

        assert await provider.increment("counter", 1, 1) == 1
        assert await provider.increment("counter", 1, 1) == 2
        assert await provider.increment("counter", 1, 0) == 2

    @pytest.mark.asyncio
    async def test_counters_never_expire(self) -> None:
        provider = InMemoryCacheProvider(expiry=0.05)
        await provider.increment("counter", 5, 1)

        await asyncio.sleep(0.1)

        assert await provider.increment("counter", 5, 1) == 6


class TestQueryCache:
    @pytest.fixture
    def cache(self) -> QueryCache:
        return QueryCache(InMemoryCacheProvider())

    @pytest.mark.asyncio
    async def test_keys_are_scoped_by_type(self, cache: QueryCache) -> None:
        user_key = await cache.hash_key(User, "count()")

        assert user_key != await cache.hash_key(Team, "count()")
        assert user_key == await cache.hash_key(User, "count()")
        assert user_key.startswith("repokit:1:1:")

    @pytest.mark.asyncio
    async def test_get_or_set(self, cache: QueryCache) -> None:
        calls: list[str] = []

        async def getter() -> int:
            calls.append("called")
            return 42

        first = await cache.get_or_set(User, "count()", getter)
        second = await cache.get_or_set(User, "count()", getter)

        assert (first.result, first.cache_used) == (42, False)
        assert (second.result, second.cache_used) == (42, True)
        assert calls == ["called"]
        assert (cache.metrics.hits, cache.metrics.misses) == (1, 1)
        assert cache.metrics.hit_rate == 0.5

    @pytest.mark.asyncio
    async def test_none_key_bypasses(self, cache: QueryCache) -> None:
        calls: list[str] = []

        async def getter() -> str:
            calls.append("called")
            return "fresh"

        first = await cache.get_or_set(User, None, getter)
        second = await cache.get_or_set(User, None, getter)

        assert not first.cache_used
        assert not second.cache_used
        assert calls == ["called", "called"]
        assert cache.metrics.bypasses == 2

    @pytest.mark.asyncio
    async def test_invalidate_only_touches_one_type(self, cache: QueryCache) -> None:
        async def getter() -> str:
            return "value"

        await cache.get_or_set(User, "key", getter)
        await cache.get_or_set(Team, "key", getter)

        await cache.invalidate(User)

        assert not (await cache.get_or_set(User, "key", getter)).cache_used
        assert (await cache.get_or_set(Team, "key", getter)).cache_used
        assert cache.metrics.invalidations == 1

    @pytest.mark.asyncio
    async def test_invalidate_all(self, cache: QueryCache) -> None:
        async def getter() -> str:
            return "value"

        await cache.get_or_set(User, "key", getter)
        await cache.get_or_set(Team, "key", getter)

        await cache.invalidate_all()

        assert not (await cache.get_or_set(User, "key", getter)).cache_used
        assert not (await cache.get_or_set(Team, "key", getter)).cache_used

    def test_hit_rate_without_reads(self, cache: QueryCache) -> None:
        assert cache.metrics.hit_rate == 0.0


class TestCachedRepository:
    @pytest.fixture(name="options")
    def create_options(self) -> Generator[RepositoryOptions, None, None]:
        name = f"cache-{ULID()}"
        yield (
            RepositoryOptionsBuilder()
            .use_in_memory_database(name)
            .use_caching(InMemoryCacheProvider(expiry=60))
            .options
        )
        drop_database(name)

    @pytest_asyncio.fixture
    async def repository(
        self, options: RepositoryOptions
    ) -> AsyncGenerator[ContextRepository[User, int], None]:
        async with ContextRepository.from_options(User, options) as repository:
            await repository.insert_many([User(id=i, name=f"User {i}") for i in range(1, 6)])
            yield repository

    @pytest.mark.asyncio
    async def test_second_read_uses_cache(self, repository: ContextRepository[User, int]) -> None:
        await repository.get_by_id(1)
        assert not repository.cache_used

        await repository.get_by_id(1)
        assert repository.cache_used

        await repository.get_by_id(2)
        assert not repository.cache_used

    @pytest.mark.asyncio
    async def test_query_results_report_cache_use(
        self, repository: ContextRepository[User, int]
    ) -> None:
        options: QueryOptions[User] = QueryOptions().order_by("name").page(1, 2)

        first = await repository.find_all(options, "name")
        second = await repository.find_all(options.clone(), "name")

        assert not first.cache_used
        assert second.cache_used
        assert second.items == ["User 1", "User 2"]
        assert second.total == 5

    @pytest.mark.asyncio
    async def test_writes_invalidate(self, repository: ContextRepository[User, int]) -> None:
        assert await repository.count() == 5
        assert await repository.count() == 5
        assert repository.cache_used

        await repository.insert_one(User(id=6, name="User 6"))

        assert await repository.count() == 6
        assert not repository.cache_used

    @pytest.mark.asyncio
    async def test_callables_bypass_the_cache(
        self, repository: ContextRepository[User, int]
    ) -> None:
        await repository.find(lambda user: user.id == 3)
        await repository.find(lambda user: user.id == 3)
        assert not repository.cache_used

        await repository.find(where("id", value=3), lambda user: user.name)
        await repository.find(where("id", value=3), lambda user: user.name)
        assert not repository.cache_used

        await repository.find(where("id", value=3), "name")
        assert await repository.find(where("id", value=3), "name") == "User 3"
        assert repository.cache_used

    @pytest.mark.asyncio
    async def test_repositories_sharing_a_provider_see_each_others_writes(
        self, repository: ContextRepository[User, int], options: RepositoryOptions
    ) -> None:
        async with ContextRepository.from_options(User, options) as other:
            assert await repository.count() == 5
            assert await other.count() == 5
            assert other.cache_used

            await repository.delete_by_id(1)

            assert await other.count() == 4
            assert not other.cache_used

    @pytest.mark.asyncio
    async def test_manual_invalidation(self, repository: ContextRepository[User, int]) -> None:
        await repository.exists(where("name", value="User 1"))

        await repository.invalidate_cache()

        await repository.exists(where("name", value="User 1"))
        assert not repository.cache_used

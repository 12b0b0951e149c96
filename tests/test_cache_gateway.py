"""持久化缓存网关与记录存储测试"""

import asyncio
from datetime import date
from unittest.mock import AsyncMock

from market_service.db.store import MemoryRecordStore, RedisRecordStore, create_record_store
from market_service.layers.cache import (
    ANALYSIS_COLLECTION,
    HISTORY_COLLECTION,
    QUOTE_COLLECTION,
    CacheGateway,
    analysis_key,
    history_key,
)
from market_service.models.analysis import AIAnalysis, AIProviderId, AnalysisKind, Sentiment
from conftest import make_history, make_quote


def _analysis(**extra) -> AIAnalysis:
    fields = dict(
        summary="ok",
        sentiment=Sentiment.NEUTRAL,
        recommendation="hold",
        confidence=0.5,
        provider=AIProviderId.MOCK,
    )
    fields.update(extra)
    return AIAnalysis(**fields)


# ─────────────────────────────────────────────────────────
# 1. 记录存储
# ─────────────────────────────────────────────────────────

class TestMemoryRecordStore:
    def test_crud(self):
        store = MemoryRecordStore()

        async def go():
            await store.upsert("c", {"key": "a", "n": 2})
            await store.upsert("c", {"key": "b", "n": 1})
            await store.upsert("c", {"key": "a", "n": 3})
            assert await store.count("c") == 2
            assert (await store.get("c", "a"))["n"] == 3
            assert [r["key"] for r in await store.scan("c", sort_by="n")] == ["b", "a"]
            assert [r["key"] for r in await store.scan("c", where=lambda r: r["n"] > 2)] == ["a"]
            assert await store.delete("c", "a") is True
            assert await store.delete("c", "a") is False
            assert await store.delete_all("c") == 1
            assert await store.get("c", "b") is None

        asyncio.run(go())

    def test_returns_copies(self):
        store = MemoryRecordStore()

        async def go():
            await store.upsert("c", {"key": "a", "items": [1]})
            record = await store.get("c", "a")
            record["items"].append(2)
            return await store.get("c", "a")

        assert asyncio.run(go())["items"] == [1]


class TestStoreSelection:
    def test_memory_fallback(self):
        assert create_record_store(None, None).backend == "memory"

    def test_redis_when_mongo_missing(self):
        assert isinstance(create_record_store(None, AsyncMock()), RedisRecordStore)

    def test_open_with_databases_disabled(self, settings):
        from market_service import db

        async def go():
            store = await db.open_record_store(settings)
            health = await db.check_health(settings)
            await db.close_connections()
            return store, health

        store, health = asyncio.run(go())
        assert store.backend == "memory"
        assert health == {"mongodb": {"status": "disabled"}, "redis": {"status": "disabled"}}


# ─────────────────────────────────────────────────────────
# 2. 缓存网关
# ─────────────────────────────────────────────────────────

class TestCacheKeys:
    def test_history_key(self):
        assert history_key("AAPL", date(2024, 1, 1), date(2024, 3, 31)) == "AAPL-2024-01-01-2024-03-31"

    def test_analysis_key(self):
        assert analysis_key("AAPL", AIProviderId.GEMINI, AnalysisKind.WEEK_FORECAST) == (
            "AAPL-gemini-week_forecast"
        )


class TestCacheGateway:
    def setup_method(self):
        from conftest import FakeClock
        from market_service.config import ServiceSettings

        self.clock = FakeClock()
        self.store = MemoryRecordStore()
        self.cache = CacheGateway(self.store, ServiceSettings(), self.clock)

    def test_quote_round_trip_and_expiry(self):
        quote = make_quote("AAPL", 182.52)

        async def go():
            await self.cache.put_quote(quote)
            self.clock.advance(60)
            fresh = await self.cache.get_quote("AAPL")
            self.clock.advance(1)
            stale = await self.cache.get_quote("AAPL")
            return fresh, stale

        fresh, stale = asyncio.run(go())
        assert fresh == quote
        assert stale is None

    def test_history_round_trip(self):
        history = make_history("AAPL")

        async def go():
            await self.cache.put_history(history)
            return await self.cache.get_history("AAPL", history.start, history.end)

        assert asyncio.run(go()) == history

    def test_analysis_round_trip(self):
        analysis = _analysis()

        async def go():
            await self.cache.put_analysis("AAPL", AIProviderId.MOCK, AnalysisKind.GENERAL, analysis)
            hit = await self.cache.get_analysis("AAPL", AIProviderId.MOCK, AnalysisKind.GENERAL)
            other_kind = await self.cache.get_analysis("AAPL", AIProviderId.MOCK, AnalysisKind.WEEK_FORECAST)
            return hit, other_kind

        hit, other_kind = asyncio.run(go())
        assert hit == analysis
        assert other_kind is None

    def test_write_replaces_previous_record(self):
        async def go():
            await self.cache.put_quote(make_quote("AAPL", 1.0))
            await self.cache.put_quote(make_quote("AAPL", 2.0))
            return await self.store.count(QUOTE_COLLECTION), await self.cache.get_quote("AAPL")

        count, quote = asyncio.run(go())
        assert count == 1
        assert quote.current_price == 2.0

    def test_read_failure_is_miss(self):
        self.store.get = AsyncMock(side_effect=RuntimeError("db down"))
        assert asyncio.run(self.cache.get_quote("AAPL")) is None

    def test_write_failure_is_swallowed(self):
        self.store.upsert = AsyncMock(side_effect=RuntimeError("db down"))
        asyncio.run(self.cache.put_quote(make_quote("AAPL")))

    def test_corrupt_record_is_miss(self):
        async def go():
            await self.store.upsert(QUOTE_COLLECTION, {
                "key": "AAPL", "timestamp": self.clock(), "payload": {"ticker": "AAPL"},
            })
            return await self.cache.get_quote("AAPL")

        assert asyncio.run(go()) is None

    def test_clear_expired(self):
        history = make_history("AAPL")

        async def go():
            await self.cache.put_quote(make_quote("AAPL"))
            await self.cache.put_history(history)
            await self.cache.put_analysis("AAPL", AIProviderId.MOCK, AnalysisKind.GENERAL, _analysis())
            self.clock.advance(301)
            await self.cache.put_quote(make_quote("MSFT"))
            first = await self.cache.clear_expired()
            self.clock.advance(3600)
            second = await self.cache.clear_expired()
            return first, second

        first, second = asyncio.run(go())
        assert first == {QUOTE_COLLECTION: 1, HISTORY_COLLECTION: 0, ANALYSIS_COLLECTION: 0}
        assert second == {QUOTE_COLLECTION: 1, HISTORY_COLLECTION: 1, ANALYSIS_COLLECTION: 1}

    def test_stats_and_clear_all(self):
        async def go():
            await self.cache.put_quote(make_quote("AAPL"))
            await self.cache.put_quote(make_quote("MSFT"))
            stats = await self.cache.stats()
            removed = await self.cache.clear_all()
            return stats, removed

        stats, removed = asyncio.run(go())
        assert stats["backend"] == "memory"
        assert stats[QUOTE_COLLECTION] == {"records": 2}
        assert removed[QUOTE_COLLECTION] == 2

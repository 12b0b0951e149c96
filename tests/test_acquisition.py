"""数据路由（提供商回退链）测试"""

import asyncio
from datetime import date

import pytest

from market_service.errors import (
    MissingCredentialError,
    UpstreamNotFoundError,
    UpstreamRateLimitedError,
    UpstreamUnavailableError,
)
from market_service.layers.acquisition import DataRouter
from market_service.models.market import SearchResult
from conftest import StubProvider, make_quote


def _router(quote_chain, history_chain=None, search_chain=None, details_chain=None):
    return DataRouter(
        quote_chain,
        history_chain or quote_chain,
        search_chain or quote_chain,
        details_chain or quote_chain,
    )


class TestDataRouter:
    def test_first_success_wins(self):
        a = StubProvider("a", quotes={"AAPL": make_quote("AAPL", 1.0)})
        b = StubProvider("b")
        quote = asyncio.run(_router([a, b]).get_quote("AAPL"))
        assert quote.current_price == 1.0
        assert b.calls["quote"] == 0

    def test_falls_through_to_last_provider(self):
        a = StubProvider("a", error=MissingCredentialError("no key", "a"))
        b = StubProvider("b", error=UpstreamRateLimitedError("slow down", "b"))
        c = StubProvider("c", quotes={"AAPL": make_quote("AAPL", 3.0)})

        quote = asyncio.run(_router([a, b, c]).get_quote("AAPL"))

        assert quote.current_price == 3.0
        assert (a.calls["quote"], b.calls["quote"], c.calls["quote"]) == (1, 1, 1)

    def test_last_error_surfaces_with_kind(self):
        a = StubProvider("a", error=UpstreamUnavailableError("down", "a"))
        b = StubProvider("b", error=UpstreamNotFoundError("missing", "b"))
        with pytest.raises(UpstreamNotFoundError) as exc_info:
            asyncio.run(_router([a, b]).get_quote("AAPL"))
        assert exc_info.value.provider == "b"

    def test_history_chain_is_separate(self):
        quote_only = StubProvider("finnhub")
        history_source = StubProvider("twelve_data")
        router = DataRouter(
            [quote_only], [history_source], [quote_only], [quote_only]
        )
        asyncio.run(router.get_history("AAPL", date(2024, 1, 1), date(2024, 2, 1)))
        assert quote_only.calls["history"] == 0
        assert history_source.calls["history"] == 1

    def test_search_fallback(self):
        a = StubProvider("a", error=UpstreamUnavailableError("down", "a"))
        b = StubProvider("b", results=[SearchResult(ticker="AAPL", name="Apple")])
        results = asyncio.run(_router([a, b]).search("apple"))
        assert [r.ticker for r in results] == ["AAPL"]

    def test_details(self):
        a = StubProvider("a")
        details = asyncio.run(_router([a]).get_details("aapl"))
        assert details.ticker == "AAPL"
        assert details.market_cap == 5e11

    def test_empty_chain_rejected(self):
        with pytest.raises(ValueError):
            DataRouter([], [StubProvider()], [StubProvider()], [StubProvider()])

    def test_providers_deduplicated(self):
        a, b = StubProvider("a"), StubProvider("b")
        router = DataRouter([a, b], [b], [a, b], [a])
        assert [p.name for p in router.providers] == ["a", "b"]

    def test_clear_cache_hits_every_provider(self):
        a, b = StubProvider("a"), StubProvider("b")
        router = DataRouter([a, b], [b], [a], [a])

        async def go():
            await router.get_quote("AAPL")
            cleared = await router.clear_cache()
            await router.get_quote("AAPL")
            return cleared

        assert asyncio.run(go()) == 2
        assert a.calls["quote"] == 2

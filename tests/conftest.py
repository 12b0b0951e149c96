"""
测试公共设施：可控时钟、桩提供商、K 线 / 报价构造函数
"""

import os
import sys
from datetime import date, timedelta
from typing import List, Optional, Sequence

import pytest

# 确保项目根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from market_service.config import ServiceSettings  # noqa: E402
from market_service.db.store import MemoryRecordStore  # noqa: E402
from market_service.models.market import PriceBar, PriceHistory, Quote, SearchResult  # noqa: E402
from market_service.providers.base import StockDataProvider  # noqa: E402


class FakeClock:
    """可手动推进的时钟（秒）"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_quote(
    ticker: str = "XYZ",
    price: float = 100.0,
    change_pct: float = 0.5,
    **extra,
) -> Quote:
    change = price * change_pct / 100
    fields = dict(
        ticker=ticker,
        company_name=f"{ticker} Corp",
        current_price=price,
        daily_change=change,
        daily_change_percent=change_pct,
        volume=1_000_000,
        avg_volume=900_000,
        previous_close=price - change,
    )
    fields.update(extra)
    return Quote(**fields)


def make_history(
    ticker: str = "XYZ",
    closes: Optional[Sequence[float]] = None,
    start: date = date(2024, 1, 1),
    volume: int = 1_000_000,
) -> PriceHistory:
    closes = list(closes if closes is not None else [100.0 + i * 0.5 for i in range(60)])
    bars: List[PriceBar] = [
        PriceBar(
            date=start + timedelta(days=i),
            open=c,
            high=c * 1.01,
            low=c * 0.99,
            close=c,
            volume=volume,
        )
        for i, c in enumerate(closes)
    ]
    end = bars[-1].date if bars else start
    return PriceHistory(ticker=ticker, start=start, end=end, bars=bars)


class StubProvider(StockDataProvider):
    """
    桩提供商：每个操作要么返回预设值，要么抛预设异常，并记录调用次数

    error 可以是异常实例，也可以是 {ticker: 异常} 的映射（只对指定代码失败）。
    """

    def __init__(
        self,
        name: str = "stub",
        quotes: Optional[dict] = None,
        history: Optional[PriceHistory] = None,
        results: Optional[List[SearchResult]] = None,
        error=None,
        clock=None,
    ):
        super().__init__(cache_ttl=60, clock=clock or FakeClock())
        self.name = name
        self.quotes = quotes or {}
        self.history = history
        self.results = results or []
        self.error = error
        self.calls = {"quote": 0, "history": 0, "search": 0, "details": 0}

    def _maybe_fail(self, ticker: str = "") -> None:
        if isinstance(self.error, dict):
            if ticker in self.error:
                raise self.error[ticker]
        elif self.error is not None:
            raise self.error

    async def _fetch_quote(self, ticker: str) -> Quote:
        self.calls["quote"] += 1
        self._maybe_fail(ticker)
        if ticker in self.quotes:
            return self.quotes[ticker]
        return make_quote(ticker)

    async def _fetch_history(self, ticker: str, start: date, end: date) -> PriceHistory:
        self.calls["history"] += 1
        self._maybe_fail(ticker)
        if self.history is not None:
            return self.history
        bars = [bar for bar in make_history(ticker, start=start).bars if bar.date <= end]
        return PriceHistory(ticker=ticker, start=start, end=end, bars=bars)

    async def _fetch_search(self, query: str) -> List[SearchResult]:
        self.calls["search"] += 1
        self._maybe_fail()
        return self.results

    async def _fetch_details(self, ticker: str) -> Quote:
        self.calls["details"] += 1
        self._maybe_fail(ticker)
        return make_quote(ticker, market_cap=5e11)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def settings() -> ServiceSettings:
    return ServiceSettings(
        MONGODB_ENABLED=False,
        REDIS_ENABLED=False,
        FINNHUB_API_KEY="",
        TWELVE_DATA_API_KEY="",
        POLYGON_API_KEY="",
        GEMINI_API_KEY="",
    )

"""
样例数据提供商
USE_MOCK_DATA 模式下所有链路只使用它：固定报价 + 以 (ticker, from, to) 为种子的合成 K 线，
同样的输入永远得到同样的输出，且不发任何网络请求。
"""

import logging
import random
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List

from market_service.errors import UpstreamNotFoundError
from market_service.models.market import PriceBar, PriceHistory, Quote, SearchResult
from market_service.providers.base import StockDataProvider

logger = logging.getLogger(__name__)

DEFAULT_BASE_PRICE = 150.0


def _sample(ticker, name, price, change, change_pct, volume, avg_volume,
            market_cap, pe, high, low, prev_close, open_price) -> Quote:
    return Quote(
        ticker=ticker,
        company_name=name,
        current_price=price,
        daily_change=change,
        daily_change_percent=change_pct,
        volume=volume,
        avg_volume=avg_volume,
        market_cap=market_cap,
        pe_ratio=pe,
        week52_high=high,
        week52_low=low,
        previous_close=prev_close,
        open_price=open_price,
    )


SAMPLE_QUOTES: List[Quote] = [
    _sample("AAPL", "Apple Inc.", 182.52, 2.34, 1.30, 52_430_000, 58_000_000,
            2_850_000_000_000, 29.5, 199.62, 164.08, 180.18, 180.50),
    _sample("GOOGL", "Alphabet Inc.", 142.87, -1.23, -0.85, 28_540_000, 25_000_000,
            1_780_000_000_000, 25.3, 153.78, 121.46, 144.10, 143.80),
    _sample("MSFT", "Microsoft Corporation", 415.26, 5.67, 1.38, 22_340_000, 24_000_000,
            3_090_000_000_000, 35.8, 430.82, 362.90, 409.59, 410.25),
    _sample("NVDA", "NVIDIA Corporation", 875.28, 12.45, 1.44, 45_670_000, 50_000_000,
            2_160_000_000_000, 68.2, 974.27, 405.23, 862.83, 865.50),
    _sample("TSLA", "Tesla, Inc.", 207.83, -3.21, -1.52, 98_230_000, 110_000_000,
            660_000_000_000, 65.4, 299.29, 138.80, 211.04, 210.50),
    # 指数 ETF
    _sample("SPY", "SPDR S&P 500 ETF Trust", 512.34, 3.12, 0.61, 71_200_000, 80_000_000,
            None, None, 524.61, 409.21, 509.22, 510.05),
    _sample("QQQ", "Invesco QQQ Trust", 438.27, 4.05, 0.93, 39_800_000, 45_000_000,
            None, None, 449.34, 342.35, 434.22, 435.10),
    _sample("DIA", "SPDR Dow Jones Industrial Average ETF", 389.15, -0.84, -0.22, 3_100_000,
            3_500_000, None, None, 399.21, 323.93, 389.99, 389.70),
]

_BY_TICKER: Dict[str, Quote] = {q.ticker: q for q in SAMPLE_QUOTES}


def generate_sample_history(
    ticker: str, start: date, end: date, base_price: float
) -> PriceHistory:
    """工作日随机游走；种子只取决于 (ticker, start, end)"""
    rng = random.Random(f"{ticker}:{start.isoformat()}:{end.isoformat()}")
    step = base_price * 0.02
    price = base_price
    bars: List[PriceBar] = []

    day = start
    while day <= end:
        if day.weekday() < 5:
            price = max(price + rng.uniform(-step, step), 1.0)
            open_price = price
            high = price + rng.uniform(0, step * 0.6)
            low = max(price - rng.uniform(0, step * 0.6), 0.5)
            close = rng.uniform(low, high)
            bars.append(PriceBar(
                date=day,
                open=round(open_price, 2),
                high=round(high, 2),
                low=round(low, 2),
                close=round(close, 2),
                volume=rng.randint(1_000_000, 10_000_000),
            ))
            price = close
        day += timedelta(days=1)

    return PriceHistory(ticker=ticker, start=start, end=end, bars=bars)


class SampleDataProvider(StockDataProvider):
    name = "sample"

    def _stamped(self, quote: Quote) -> Quote:
        """样例报价的数值固定，last_updated 取本次获取时刻"""
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        return quote.model_copy(update={"last_updated": now})

    async def _fetch_quote(self, ticker: str) -> Quote:
        quote = _BY_TICKER.get(ticker)
        if quote is None:
            raise UpstreamNotFoundError(f"no sample quote for {ticker}", self.name)
        logger.debug(f"🎭 样例报价: {ticker}")
        return self._stamped(quote)

    async def _fetch_history(self, ticker: str, start: date, end: date) -> PriceHistory:
        sample = _BY_TICKER.get(ticker)
        base = sample.current_price if sample else DEFAULT_BASE_PRICE
        logger.debug(f"🎭 样例 K 线: {ticker} {start} ~ {end}")
        return generate_sample_history(ticker, start, end, base)

    async def _fetch_search(self, query: str) -> List[SearchResult]:
        needle = query.lower()
        return [
            SearchResult(ticker=q.ticker, name=q.company_name)
            for q in SAMPLE_QUOTES
            if needle in q.ticker.lower() or needle in q.company_name.lower()
        ]

    async def _fetch_details(self, ticker: str) -> Quote:
        # 未知代码回退到第一条样例
        return self._stamped(_BY_TICKER.get(ticker, SAMPLE_QUOTES[0]))

"""
行情数据服务
整合数据路由与持久化缓存：读缓存 → 未命中走回退链 → 写回缓存。
批量报价按代码并发获取，单个代码失败只会被丢弃，不影响其他代码。
"""

import asyncio
import logging
from datetime import date
from typing import Iterable, List, Optional

from market_service.layers.acquisition import DataRouter
from market_service.layers.cache import CacheGateway
from market_service.models.market import PriceHistory, Quote, SearchResult
from market_service.providers.base import normalize_ticker

logger = logging.getLogger(__name__)


class MarketDataService:
    """行情数据业务服务"""

    def __init__(self, router: DataRouter, cache: CacheGateway):
        self._router = router
        self._cache = cache

    @property
    def router(self) -> DataRouter:
        return self._router

    # ── 报价 ──────────────────────────────────────────────

    async def get_quote(self, ticker: str, force_refresh: bool = False) -> Quote:
        """
        获取报价（缓存 60 秒）

        Args:
            ticker: 股票代码（大小写不敏感）
            force_refresh: 跳过缓存读取，结果仍会写回缓存
        """
        ticker = normalize_ticker(ticker)
        if not force_refresh:
            cached = await self._cache.get_quote(ticker)
            if cached is not None:
                return cached

        quote = await self._router.get_quote(ticker)
        await self._cache.put_quote(quote)
        return quote

    async def _quote_or_none(self, ticker: str) -> Optional[Quote]:
        try:
            return await self.get_quote(ticker)
        except Exception as exc:
            logger.warning(f"⚠️ {ticker} 报价获取失败，已跳过: {exc}")
            return None

    async def fetch_quotes(self, tickers: Iterable[str]) -> List[Quote]:
        """并发获取多个代码的报价，按输入顺序返回成功的部分"""
        unique: List[str] = []
        for ticker in tickers:
            value = (ticker or "").strip().upper()
            if value and value not in unique:
                unique.append(value)
        if not unique:
            return []

        results = await asyncio.gather(*(self._quote_or_none(t) for t in unique))
        quotes = [q for q in results if q is not None]
        logger.info(f"批量报价完成: {len(quotes)}/{len(unique)} 成功")
        return quotes

    # ── 历史 K 线 ─────────────────────────────────────────

    async def get_history(
        self, ticker: str, start: date, end: date, force_refresh: bool = False
    ) -> PriceHistory:
        """获取 [start, end] 区间日线（缓存 300 秒）"""
        ticker = normalize_ticker(ticker)
        if not force_refresh:
            cached = await self._cache.get_history(ticker, start, end)
            if cached is not None:
                return cached

        history = await self._router.get_history(ticker, start, end)
        await self._cache.put_history(history)
        return history

    # ── 搜索 / 详情 ───────────────────────────────────────

    async def search(self, query: str) -> List[SearchResult]:
        return await self._router.search(query)

    async def get_details(self, ticker: str) -> Quote:
        return await self._router.get_details(normalize_ticker(ticker))

    async def clear_provider_caches(self) -> int:
        return await self._router.clear_cache()

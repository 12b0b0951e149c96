"""
Layer 1 – 数据获取层（数据路由）
每类操作持有一条固定顺序的提供商链：前一个失败（任何错误）记录日志后换下一个，
只有全部失败时才把最后一个提供商的错误原样抛出（错误分类不变）。
"""

import logging
from datetime import date
from typing import Awaitable, Callable, List, Sequence, TypeVar

from market_service.models.market import PriceHistory, Quote, SearchResult
from market_service.providers.base import StockDataProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DataRouter:
    """按操作类型的提供商回退链"""

    def __init__(
        self,
        quote_chain: Sequence[StockDataProvider],
        history_chain: Sequence[StockDataProvider],
        search_chain: Sequence[StockDataProvider],
        details_chain: Sequence[StockDataProvider],
    ):
        for label, chain in (
            ("quote", quote_chain),
            ("history", history_chain),
            ("search", search_chain),
            ("details", details_chain),
        ):
            if not chain:
                raise ValueError(f"{label} chain must not be empty")
        self.quote_chain = list(quote_chain)
        self.history_chain = list(history_chain)
        self.search_chain = list(search_chain)
        self.details_chain = list(details_chain)

    @property
    def providers(self) -> List[StockDataProvider]:
        """所有链路涉及的提供商（去重，保持首次出现顺序）"""
        seen: List[StockDataProvider] = []
        for chain in (self.quote_chain, self.history_chain, self.search_chain, self.details_chain):
            for provider in chain:
                if provider not in seen:
                    seen.append(provider)
        return seen

    async def _run_chain(
        self,
        operation: str,
        chain: List[StockDataProvider],
        call: Callable[[StockDataProvider], Awaitable[T]],
    ) -> T:
        last_error: Exception = RuntimeError("empty provider chain")
        for index, provider in enumerate(chain):
            try:
                result = await call(provider)
                if index > 0:
                    logger.info(f"✅ {operation} 回退成功（来源：{provider.name}）")
                return result
            except Exception as exc:
                last_error = exc
                if index + 1 < len(chain):
                    logger.warning(
                        f"⚠️ {operation} 失败（来源：{provider.name}），"
                        f"尝试 {chain[index + 1].name}: {exc}"
                    )
                else:
                    logger.error(f"❌ {operation} 所有提供商均失败，最后错误（{provider.name}）: {exc}")
        raise last_error

    async def get_quote(self, ticker: str) -> Quote:
        return await self._run_chain(
            f"报价 {ticker}", self.quote_chain, lambda p: p.get_quote(ticker)
        )

    async def get_history(self, ticker: str, start: date, end: date) -> PriceHistory:
        return await self._run_chain(
            f"历史数据 {ticker}", self.history_chain, lambda p: p.get_history(ticker, start, end)
        )

    async def search(self, query: str) -> List[SearchResult]:
        return await self._run_chain(
            f"搜索 '{query}'", self.search_chain, lambda p: p.search(query)
        )

    async def get_details(self, ticker: str) -> Quote:
        return await self._run_chain(
            f"详情 {ticker}", self.details_chain, lambda p: p.get_details(ticker)
        )

    async def clear_cache(self) -> int:
        """清空所有提供商的请求级缓存，返回清理的提供商数量"""
        providers = self.providers
        for provider in providers:
            await provider.clear_cache()
        return len(providers)

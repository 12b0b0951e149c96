"""
自选股服务
自选股持久化在记录存储的 "watchlist" 集合中，顺序由 sort_order 决定；
快照 = 指数报价 + 自选股报价（并发获取，失败的代码被略去）。
"""

import asyncio
import logging
from typing import List, Sequence

from market_service.db.store import RecordStore
from market_service.models.market import SearchResult
from market_service.models.watchlist import WatchlistItem, WatchlistSnapshot
from market_service.providers.base import normalize_ticker
from market_service.services.market_data_service import MarketDataService

logger = logging.getLogger(__name__)

WATCHLIST_COLLECTION = "watchlist"
RECENT_SEARCH_COLLECTION = "recent_searches"
RECENT_SEARCH_KEY = "recent"
MAX_RECENT_SEARCHES = 15


class WatchlistService:
    """自选股业务服务"""

    def __init__(
        self,
        store: RecordStore,
        market_data: MarketDataService,
        default_tickers: Sequence[str] = ("AAPL",),
        index_tickers: Sequence[str] = ("SPY", "QQQ", "DIA"),
    ):
        self._store = store
        self._market_data = market_data
        self._default_tickers = list(default_tickers)
        self._index_tickers = list(index_tickers)

    @staticmethod
    def _to_record(item: WatchlistItem) -> dict:
        record = item.model_dump(mode="json")
        record["key"] = item.ticker
        return record

    async def load(self) -> List[WatchlistItem]:
        records = await self._store.scan(WATCHLIST_COLLECTION, sort_by="sort_order")
        return [WatchlistItem.model_validate(r) for r in records]

    async def save(self, items: Sequence[WatchlistItem]) -> List[WatchlistItem]:
        """整体替换：清空后按列表顺序写入（sort_order = 下标）"""
        await self._store.delete_all(WATCHLIST_COLLECTION)
        saved: List[WatchlistItem] = []
        seen = set()
        for item in items:
            ticker = normalize_ticker(item.ticker)
            if ticker in seen:
                continue
            seen.add(ticker)
            entry = item.model_copy(update={"ticker": ticker, "sort_order": len(saved)})
            await self._store.upsert(WATCHLIST_COLLECTION, self._to_record(entry))
            saved.append(entry)
        logger.info(f"自选股已保存: {[i.ticker for i in saved]}")
        return saved

    async def add(self, ticker: str, company_name: str = "") -> List[WatchlistItem]:
        """已存在则只更新公司名，否则追加到末尾"""
        ticker = normalize_ticker(ticker)
        existing = await self._store.get(WATCHLIST_COLLECTION, ticker)
        if existing is not None:
            item = WatchlistItem.model_validate(existing)
            if company_name:
                item = item.model_copy(update={"company_name": company_name})
                await self._store.upsert(WATCHLIST_COLLECTION, self._to_record(item))
        else:
            count = await self._store.count(WATCHLIST_COLLECTION)
            item = WatchlistItem(ticker=ticker, company_name=company_name or ticker, sort_order=count)
            await self._store.upsert(WATCHLIST_COLLECTION, self._to_record(item))
            logger.info(f"➕ 自选股新增: {ticker}")
        return await self.load()

    async def remove(self, ticker: str) -> bool:
        removed = await self._store.delete(WATCHLIST_COLLECTION, normalize_ticker(ticker))
        if removed:
            logger.info(f"➖ 自选股移除: {ticker}")
        return removed

    async def tickers(self) -> List[str]:
        """自选股代码；为空时写入默认列表"""
        items = await self.load()
        if not items:
            items = await self.save([WatchlistItem(ticker=t, company_name=t) for t in self._default_tickers])
        return [i.ticker for i in items]

    async def snapshot(self) -> WatchlistSnapshot:
        tickers = await self.tickers()
        indices, quotes = await asyncio.gather(
            self._market_data.fetch_quotes(self._index_tickers),
            self._market_data.fetch_quotes(tickers),
        )
        return WatchlistSnapshot(
            indices=indices,
            watchlist=sorted(quotes, key=lambda q: q.ticker),
        )


class RecentSearches:
    """最近搜索：按 ticker 去重、最新的在前、最多保留 15 条"""

    def __init__(self, store: RecordStore, limit: int = MAX_RECENT_SEARCHES):
        self._store = store
        self._limit = limit

    async def list(self) -> List[SearchResult]:
        record = await self._store.get(RECENT_SEARCH_COLLECTION, RECENT_SEARCH_KEY)
        if not record:
            return []
        return [SearchResult.model_validate(item) for item in record.get("items", [])]

    async def add(self, result: SearchResult) -> List[SearchResult]:
        items = [r for r in await self.list() if r.ticker != result.ticker]
        items.insert(0, result)
        items = items[: self._limit]
        await self._store.upsert(RECENT_SEARCH_COLLECTION, {
            "key": RECENT_SEARCH_KEY,
            "items": [r.model_dump(mode="json") for r in items],
        })
        return items

    async def clear(self) -> None:
        await self._store.delete_all(RECENT_SEARCH_COLLECTION)

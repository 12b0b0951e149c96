"""
行情数据提供商基类
所有提供商实现同一契约：get_quote / get_history / search / get_details / clear_cache。
每个提供商持有一个短 TTL 的请求级缓存（按 ticker 或 (ticker, from, to) 为键）。
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Tuple

import httpx

from market_service.errors import InvalidRequestError, MissingCredentialError
from market_service.layers.processing import ProcessingLayer
from market_service.models.market import PriceHistory, Quote, SearchResult

logger = logging.getLogger(__name__)


def normalize_ticker(ticker: str) -> str:
    value = (ticker or "").strip().upper()
    if not value:
        raise InvalidRequestError("ticker must not be empty")
    return value


class RequestCache:
    """带 TTL 的进程内缓存，asyncio.Lock 保护并发访问"""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time):
        self._ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: Hashable) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[key]
                return None
            return value

    async def put(self, key: Hashable, value: Any) -> None:
        async with self._lock:
            self._entries[key] = (value, self._clock())

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def get_or_fetch(self, key: Hashable, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """命中直接返回；否则调用 fetch（锁外执行，同键并发写入以最后一次为准）"""
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await fetch()
        await self.put(key, value)
        return value

    def __len__(self) -> int:
        return len(self._entries)


class StockDataProvider(ABC):
    """行情数据提供商契约"""

    name: str = "abstract"

    def __init__(self, cache_ttl: float = 60, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._cache = RequestCache(cache_ttl, clock)
        self._processor = ProcessingLayer()

    async def get_quote(self, ticker: str) -> Quote:
        ticker = normalize_ticker(ticker)
        return await self._cache.get_or_fetch(
            ("quote", ticker), lambda: self._fetch_quote(ticker)
        )

    async def get_history(self, ticker: str, start: date, end: date) -> PriceHistory:
        ticker = normalize_ticker(ticker)
        if start > end:
            raise InvalidRequestError(f"start {start} is after end {end}")
        return await self._cache.get_or_fetch(
            ("history", ticker, start, end), lambda: self._fetch_history(ticker, start, end)
        )

    async def search(self, query: str) -> List[SearchResult]:
        query = (query or "").strip()
        if not query:
            return []
        return await self._fetch_search(query)

    async def get_details(self, ticker: str) -> Quote:
        ticker = normalize_ticker(ticker)
        return await self._cache.get_or_fetch(
            ("details", ticker), lambda: self._fetch_details(ticker)
        )

    async def clear_cache(self) -> None:
        await self._cache.clear()
        logger.info(f"🔄 [{self.name}] 请求缓存已清空")

    @abstractmethod
    async def _fetch_quote(self, ticker: str) -> Quote:
        ...

    @abstractmethod
    async def _fetch_history(self, ticker: str, start: date, end: date) -> PriceHistory:
        ...

    @abstractmethod
    async def _fetch_search(self, query: str) -> List[SearchResult]:
        ...

    @abstractmethod
    async def _fetch_details(self, ticker: str) -> Quote:
        ...


class HttpStockDataProvider(StockDataProvider):
    """基于 REST API 的提供商：共享 httpx 客户端 + API key"""

    base_url: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        cache_ttl: float = 60,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(cache_ttl, clock)
        self._client = client
        self._api_key = (api_key or "").strip()

    def _require_key(self) -> str:
        if not self._api_key:
            raise MissingCredentialError(f"{self.name} API key is not configured", self.name)
        return self._api_key


def to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """宽松数值转换（上游常以字符串返回数字）"""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def to_int(value: Any, default: int = 0) -> int:
    number = to_float(value)
    return int(number) if number is not None else default

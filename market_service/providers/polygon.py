"""Polygon.io 提供商（所有链路的最后兜底）"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from market_service.errors import MalformedResponseError, UpstreamNotFoundError
from market_service.models.market import PriceHistory, Quote, SearchResult
from market_service.network import request_json
from market_service.providers.base import HttpStockDataProvider, to_float, to_int

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10


class PolygonProvider(HttpStockDataProvider):
    name = "polygon"
    base_url = "https://api.polygon.io"

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = dict(params or {}, apiKey=self._require_key())
        return await request_json(
            self._client, "GET", f"{self.base_url}{path}", provider=self.name, params=params
        )

    async def _fetch_quote(self, ticker: str) -> Quote:
        # 免费档只有上一交易日聚合数据：涨跌按当日 开 → 收 计算
        data = await self._get(f"/v2/aggs/ticker/{ticker}/prev", {"adjusted": "true"})
        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            raise UpstreamNotFoundError(f"no previous-day aggregate for {ticker}", self.name)

        bar = results[0]
        if not isinstance(bar, dict):
            raise MalformedResponseError("aggregate entry is not an object", self.name)
        close = to_float(bar.get("c"))
        open_price = to_float(bar.get("o"))
        if close is None or open_price is None:
            raise MalformedResponseError("aggregate missing 'c' or 'o'", self.name)

        change = close - open_price
        return Quote(
            ticker=data.get("ticker") or ticker,
            company_name=ticker,
            current_price=close,
            daily_change=change,
            daily_change_percent=change / open_price * 100 if open_price else 0.0,
            volume=to_int(bar.get("v")),
            previous_close=close,
            open_price=open_price,
        )

    async def _fetch_history(self, ticker: str, start: date, end: date) -> PriceHistory:
        data = await self._get(
            f"/v2/aggs/ticker/{ticker}/range/1/day/{start.isoformat()}/{end.isoformat()}",
            {"adjusted": "true", "sort": "asc", "limit": 5000},
        )
        if not isinstance(data, dict):
            raise MalformedResponseError("aggregates response is not an object", self.name)

        records = []
        for bar in data.get("results") or []:
            if not isinstance(bar, dict) or bar.get("t") is None:
                continue
            records.append({
                "date": datetime.fromtimestamp(bar["t"] / 1000, tz=timezone.utc).date(),
                "open": bar.get("o"),
                "high": bar.get("h"),
                "low": bar.get("l"),
                "close": bar.get("c"),
                "volume": bar.get("v"),
            })
        return self._processor.to_history(ticker, start, end, records)

    async def _fetch_search(self, query: str) -> List[SearchResult]:
        data = await self._get(
            "/v3/reference/tickers",
            {"search": query, "active": "true", "limit": SEARCH_LIMIT},
        )
        items = data.get("results") if isinstance(data, dict) else None
        return [
            SearchResult(
                ticker=item["ticker"],
                name=item.get("name") or item["ticker"],
                market=item.get("market") or "stocks",
                locale=item.get("locale") or "us",
                primary_exchange=item.get("primary_exchange"),
                type=item.get("type") or "CS",
                active=bool(item.get("active", True)),
            )
            for item in items or []
            if isinstance(item, dict) and item.get("ticker")
        ]

    async def _fetch_details(self, ticker: str) -> Quote:
        quote = await self.get_quote(ticker)
        data = await self._get(f"/v3/reference/tickers/{ticker}")
        details = data.get("results") if isinstance(data, dict) else None
        if not isinstance(details, dict):
            raise MalformedResponseError("ticker details missing 'results'", self.name)

        return quote.model_copy(update={
            "company_name": details.get("name") or quote.company_name,
            "market_cap": to_float(details.get("market_cap")),
        })

"""Finnhub 提供商（免费档 60 次/分钟，报价与搜索首选）"""

import logging
from datetime import date, datetime, time as dt_time, timezone
from typing import Any, Dict, List

from market_service.errors import MalformedResponseError, UpstreamNotFoundError
from market_service.models.market import PriceHistory, Quote, SearchResult
from market_service.network import request_json
from market_service.providers.base import HttpStockDataProvider, to_float, to_int

logger = logging.getLogger(__name__)

_MARKET_CAP_UNIT = 1_000_000  # profile2 的 marketCapitalization 单位为百万美元


class FinnhubProvider(HttpStockDataProvider):
    name = "finnhub"
    base_url = "https://finnhub.io/api/v1"

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        params = dict(params, token=self._require_key())
        return await request_json(
            self._client, "GET", f"{self.base_url}{path}", provider=self.name, params=params
        )

    async def _fetch_quote(self, ticker: str) -> Quote:
        data = await self._get("/quote", {"symbol": ticker})
        if not isinstance(data, dict) or "c" not in data:
            raise MalformedResponseError("quote response missing 'c'", self.name)

        current = to_float(data.get("c"), 0.0)
        previous = to_float(data.get("pc"), 0.0)
        # 未知代码时 Finnhub 返回全 0 而不是 404
        if current == 0 and previous == 0:
            raise UpstreamNotFoundError(f"no quote for {ticker}", self.name)

        change = current - previous
        change_pct = change / previous * 100 if previous else 0.0
        return Quote(
            ticker=ticker,
            company_name=ticker,
            current_price=current,
            daily_change=change,
            daily_change_percent=change_pct,
            volume=to_int(data.get("v")),
            previous_close=previous,
            open_price=to_float(data.get("o")),
        )

    async def _fetch_history(self, ticker: str, start: date, end: date) -> PriceHistory:
        start_ts = int(datetime.combine(start, dt_time.min, tzinfo=timezone.utc).timestamp())
        end_ts = int(datetime.combine(end, dt_time.max, tzinfo=timezone.utc).timestamp())
        data = await self._get(
            "/stock/candle",
            {"symbol": ticker, "resolution": "D", "from": start_ts, "to": end_ts},
        )
        if not isinstance(data, dict):
            raise MalformedResponseError("candle response is not an object", self.name)
        if data.get("s") != "ok" or not data.get("t"):
            raise MalformedResponseError(f"no candle data (s={data.get('s')})", self.name)

        try:
            records = [
                {
                    "date": datetime.fromtimestamp(ts, tz=timezone.utc).date(),
                    "open": data["o"][i],
                    "high": data["h"][i],
                    "low": data["l"][i],
                    "close": data["c"][i],
                    "volume": data["v"][i],
                }
                for i, ts in enumerate(data["t"])
            ]
        except (KeyError, IndexError, TypeError) as exc:
            raise MalformedResponseError(f"candle arrays inconsistent: {exc}", self.name) from exc

        return self._processor.to_history(ticker, start, end, records)

    async def _fetch_search(self, query: str) -> List[SearchResult]:
        data = await self._get("/search", {"q": query})
        if not isinstance(data, dict):
            raise MalformedResponseError("search response is not an object", self.name)
        return [
            SearchResult(ticker=item["symbol"], name=item.get("description") or item["symbol"])
            for item in data.get("result") or []
            if item.get("symbol")
        ]

    async def _fetch_details(self, ticker: str) -> Quote:
        quote = await self.get_quote(ticker)
        profile = await self._get("/stock/profile2", {"symbol": ticker})
        if not isinstance(profile, dict) or not profile:
            logger.debug(f"[finnhub] {ticker} 无公司资料，返回基础报价")
            return quote

        market_cap = to_float(profile.get("marketCapitalization"))
        return quote.model_copy(update={
            "company_name": profile.get("name") or quote.company_name,
            "market_cap": market_cap * _MARKET_CAP_UNIT if market_cap is not None else None,
        })

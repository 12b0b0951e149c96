"""Twelve Data 提供商（免费档唯一提供日线历史的数据源，历史数据首选）"""

import logging
from datetime import date
from typing import Any, Dict, List

from market_service.errors import MalformedResponseError
from market_service.models.market import PriceHistory, Quote, SearchResult
from market_service.network import error_for_code, request_json
from market_service.providers.base import HttpStockDataProvider, to_float, to_int

logger = logging.getLogger(__name__)

MAX_OUTPUT_SIZE = 5000


class TwelveDataProvider(HttpStockDataProvider):
    name = "twelve_data"
    base_url = "https://api.twelvedata.com"

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        params = dict(params, apikey=self._require_key())
        data = await request_json(
            self._client, "GET", f"{self.base_url}{path}", provider=self.name, params=params
        )
        # Twelve Data 出错时仍返回 200，错误码放在响应体里
        if isinstance(data, dict) and data.get("status") == "error":
            code = to_int(data.get("code"), 500)
            raise error_for_code(code, str(data.get("message") or "error"), self.name)
        return data

    async def _fetch_quote(self, ticker: str) -> Quote:
        data = await self._get("/quote", {"symbol": ticker})
        if not isinstance(data, dict) or "close" not in data:
            raise MalformedResponseError("quote response missing 'close'", self.name)

        current = to_float(data.get("close"), 0.0)
        previous = to_float(data.get("previous_close"), current)
        change = current - previous
        change_pct = change / previous * 100 if previous > 0 else 0.0
        week52 = data.get("fifty_two_week") or {}
        avg_volume = to_float(data.get("average_volume"))

        return Quote(
            ticker=ticker,
            company_name=data.get("name") or ticker,
            current_price=current,
            daily_change=change,
            daily_change_percent=change_pct,
            volume=to_int(data.get("volume")),
            previous_close=previous,
            open_price=to_float(data.get("open"), current),
            avg_volume=int(avg_volume) if avg_volume is not None else None,
            week52_high=to_float(week52.get("high")),
            week52_low=to_float(week52.get("low")),
        )

    async def _fetch_history(self, ticker: str, start: date, end: date) -> PriceHistory:
        days = (end - start).days
        output_size = min(days + 5, MAX_OUTPUT_SIZE)
        data = await self._get(
            "/time_series",
            {"symbol": ticker, "interval": "1day", "outputsize": output_size},
        )
        values = data.get("values") if isinstance(data, dict) else None
        if not values:
            raise MalformedResponseError("time_series returned no values", self.name)

        records = [
            {
                "date": value.get("datetime"),
                "open": value.get("open"),
                "high": value.get("high"),
                "low": value.get("low"),
                "close": value.get("close"),
                "volume": value.get("volume"),
            }
            for value in values
            if isinstance(value, dict)
        ]
        history = self._processor.to_history(ticker, start, end, records)
        logger.debug(
            f"[twelve_data] {ticker} 解析 {len(values)} 条，区间内 {len(history)} 条"
        )
        return history

    async def _fetch_search(self, query: str) -> List[SearchResult]:
        data = await self._get("/symbol_search", {"symbol": query})
        items = data.get("data") if isinstance(data, dict) else None
        return [
            SearchResult(
                ticker=item["symbol"],
                name=item.get("instrument_name") or item["symbol"],
                primary_exchange=item.get("exchange"),
            )
            for item in items or []
            if item.get("symbol")
        ]

    async def _fetch_details(self, ticker: str) -> Quote:
        # 免费档没有基本面数据，详情即报价
        return await self.get_quote(ticker)

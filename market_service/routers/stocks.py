"""
股票行情路由
GET  /api/stocks/search            - 搜索代码（结果首条写入最近搜索）
POST /api/stocks/quotes            - 批量报价（失败的代码被略去）
GET  /api/stocks/{ticker}/quote    - 报价
GET  /api/stocks/{ticker}/details  - 公司详情
GET  /api/stocks/{ticker}/history  - 日线 K 线
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from market_service.container import ServiceContainer
from market_service.models.response import ApiResponse
from market_service.routers.deps import dump, get_container, parse_date_range

router = APIRouter(prefix="/api/stocks", tags=["股票行情"])

_DEFAULT_DAYS = 30


class BatchQuoteRequest(BaseModel):
    tickers: List[str] = Field(default_factory=list)


@router.get("/search", response_model=ApiResponse)
async def search_stocks(
    q: str = Query(..., description="搜索关键词（代码或公司名）"),
    remember: bool = Query(default=True, description="是否把首条结果记入最近搜索"),
    container: ServiceContainer = Depends(get_container),
):
    results = await container.market_data.search(q)
    if remember and results:
        await container.recent_searches.add(results[0])
    return ApiResponse.ok(data={"query": q, "count": len(results), "results": dump(results)})


@router.post("/quotes", response_model=ApiResponse)
async def batch_quotes(
    body: BatchQuoteRequest,
    container: ServiceContainer = Depends(get_container),
):
    quotes = await container.market_data.fetch_quotes(body.tickers)
    return ApiResponse.ok(
        data={"count": len(quotes), "quotes": dump(quotes)},
        message=f"获取 {len(quotes)}/{len(body.tickers)} 个报价",
    )


@router.get("/{ticker}/quote", response_model=ApiResponse)
async def get_quote(
    ticker: str,
    force_refresh: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    quote = await container.market_data.get_quote(ticker, force_refresh=force_refresh)
    return ApiResponse.ok(data=dump(quote))


@router.get("/{ticker}/details", response_model=ApiResponse)
async def get_details(
    ticker: str,
    container: ServiceContainer = Depends(get_container),
):
    quote = await container.market_data.get_details(ticker)
    return ApiResponse.ok(data=dump(quote))


@router.get("/{ticker}/history", response_model=ApiResponse)
async def get_history(
    ticker: str,
    start_date: Optional[str] = Query(default=None, description="开始日期 YYYY-MM-DD，默认 30 天前"),
    end_date: Optional[str] = Query(default=None, description="结束日期 YYYY-MM-DD，默认今天"),
    force_refresh: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    """获取日线 K 线"""
    start, end = parse_date_range(start_date, end_date, _DEFAULT_DAYS)
    history = await container.market_data.get_history(
        ticker, start, end, force_refresh=force_refresh
    )
    return ApiResponse.ok(
        data={
            "ticker": history.ticker,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "count": len(history),
            "bars": dump(list(history.bars)),
        },
    )

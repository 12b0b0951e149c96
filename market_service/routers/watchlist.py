"""
自选股路由
GET    /api/watchlist                 - 自选股列表
PUT    /api/watchlist                 - 整体保存（列表顺序即排序）
POST   /api/watchlist                 - 添加 / 更新公司名
DELETE /api/watchlist/{ticker}        - 移除
GET    /api/watchlist/snapshot        - 指数 + 自选股报价
GET    /api/watchlist/recent-searches - 最近搜索
DELETE /api/watchlist/recent-searches - 清空最近搜索
"""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from market_service.container import ServiceContainer
from market_service.errors import UpstreamNotFoundError
from market_service.models.response import ApiResponse
from market_service.models.watchlist import WatchlistItem
from market_service.routers.deps import dump, get_container

router = APIRouter(prefix="/api/watchlist", tags=["自选股"])


class AddRequest(BaseModel):
    ticker: str
    company_name: str = ""


class SaveRequest(BaseModel):
    items: List[WatchlistItem] = Field(default_factory=list)


@router.get("", response_model=ApiResponse)
async def list_watchlist(container: ServiceContainer = Depends(get_container)):
    items = await container.watchlist.load()
    return ApiResponse.ok(data={"count": len(items), "items": dump(items)})


@router.put("", response_model=ApiResponse)
async def save_watchlist(body: SaveRequest, container: ServiceContainer = Depends(get_container)):
    items = await container.watchlist.save(body.items)
    return ApiResponse.ok(data={"count": len(items), "items": dump(items)}, message="自选股已保存")


@router.post("", response_model=ApiResponse)
async def add_to_watchlist(body: AddRequest, container: ServiceContainer = Depends(get_container)):
    items = await container.watchlist.add(body.ticker, body.company_name)
    return ApiResponse.ok(data={"count": len(items), "items": dump(items)})


@router.get("/snapshot", response_model=ApiResponse)
async def watchlist_snapshot(container: ServiceContainer = Depends(get_container)):
    """并发获取指数与自选股报价"""
    snapshot = await container.watchlist.snapshot()
    return ApiResponse.ok(data=dump(snapshot))


@router.get("/recent-searches", response_model=ApiResponse)
async def recent_searches(container: ServiceContainer = Depends(get_container)):
    results = await container.recent_searches.list()
    return ApiResponse.ok(data={"count": len(results), "results": dump(results)})


@router.delete("/recent-searches", response_model=ApiResponse)
async def clear_recent_searches(container: ServiceContainer = Depends(get_container)):
    await container.recent_searches.clear()
    return ApiResponse.ok(message="最近搜索已清空")


@router.delete("/{ticker}", response_model=ApiResponse)
async def remove_from_watchlist(ticker: str, container: ServiceContainer = Depends(get_container)):
    if not await container.watchlist.remove(ticker):
        raise UpstreamNotFoundError(f"{ticker.upper()} is not in the watchlist")
    return ApiResponse.ok(message=f"已移除 {ticker.upper()}")

"""
技术指标路由
GET /api/technical/{ticker} - 指标（SMA/EMA/RSI/MACD/布林带）+ 支撑阻力位
"""

from fastapi import APIRouter, Depends

from market_service.container import ServiceContainer
from market_service.models.response import ApiResponse
from market_service.routers.deps import dump, get_container

router = APIRouter(prefix="/api/technical", tags=["技术指标"])


@router.get("/{ticker}", response_model=ApiResponse)
async def technical_snapshot(ticker: str, container: ServiceContainer = Depends(get_container)):
    """数据不足的指标返回 null"""
    snapshot = await container.analysis.technicals(ticker)
    return ApiResponse.ok(data=dump(snapshot))

"""
缓存管理路由
GET  /api/cache/stats            - 各缓存集合记录数
POST /api/cache/sweep            - 清理过期缓存
POST /api/cache/clear            - 清空全部持久化缓存与内存分析缓存
POST /api/cache/clear-providers  - 清空各提供商请求缓存
"""

from fastapi import APIRouter, Depends

from market_service.container import ServiceContainer
from market_service.models.response import ApiResponse
from market_service.routers.deps import get_container

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(container: ServiceContainer = Depends(get_container)):
    stats = await container.cache.stats()
    return ApiResponse.ok(data=stats)


@router.post("/sweep", response_model=ApiResponse)
async def sweep_expired(container: ServiceContainer = Depends(get_container)):
    removed = await container.cache.clear_expired()
    return ApiResponse.ok(data={"removed": removed}, message=f"已清理 {sum(removed.values())} 条过期缓存")


@router.post("/clear", response_model=ApiResponse)
async def clear_cache(container: ServiceContainer = Depends(get_container)):
    await container.cache.clear_all()
    container.orchestrator.invalidate()
    return ApiResponse.ok(message="缓存已清空")


@router.post("/clear-providers", response_model=ApiResponse)
async def clear_provider_caches(container: ServiceContainer = Depends(get_container)):
    count = await container.market_data.clear_provider_caches()
    return ApiResponse.ok(data={"providers": count}, message=f"已清空 {count} 个提供商的请求缓存")

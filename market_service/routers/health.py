"""健康检查路由"""

import time

from fastapi import APIRouter, Depends

from market_service import __version__
from market_service.container import ServiceContainer
from market_service.db import check_health
from market_service.routers.deps import get_container

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(container: ServiceContainer = Depends(get_container)):
    """服务健康检查"""
    db_health = await check_health(container.settings)
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "Market Data Service",
            "mock_data": container.settings.USE_MOCK_DATA,
            "record_store": container.store.backend,
            "providers": [p.name for p in container.router.providers],
            "databases": db_health,
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}

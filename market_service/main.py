"""
美股行情与分析服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn market_service.main:app --host 0.0.0.0 --port 8001
    python -m market_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from market_service import __version__, db
from market_service.config import settings
from market_service.container import build_container
from market_service.errors import ErrorKind, MarketServiceError
from market_service.models.response import ApiResponse
from market_service.network import create_http_client
from market_service.routers import analysis, cache, health, stocks, technical, watchlist

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.UPSTREAM_NOT_FOUND: 404,
    ErrorKind.UPSTREAM_RATE_LIMITED: 429,
    ErrorKind.MISSING_CREDENTIAL: 503,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.UPSTREAM_AUTH_REJECTED: 502,
    ErrorKind.UPSTREAM_SERVER_ERROR: 502,
    ErrorKind.MALFORMED_UPSTREAM_RESPONSE: 502,
}


# ── 生命周期管理 ──────────────────────────────────────────
def _warn_missing_credentials() -> None:
    if settings.USE_MOCK_DATA:
        return
    for name, key in (
        ("Finnhub", settings.FINNHUB_API_KEY),
        ("Twelve Data", settings.TWELVE_DATA_API_KEY),
        ("Polygon", settings.POLYGON_API_KEY),
    ):
        if not key:
            logger.warning(f"⚠️ 未配置 {name} API key，该提供商将返回 missing_credential")
    if not settings.has_cloud_ai_credentials:
        logger.info("未配置 Gemini API key，云端分析不可用")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Market Data Service v{__version__}（样例数据: {settings.USE_MOCK_DATA}）")

    store = await db.open_record_store(settings)
    http_client = create_http_client(settings)
    app.state.container = build_container(settings, store, http_client)
    _warn_missing_credentials()

    yield

    await http_client.aclose()
    await db.close_connections()
    logger.info("✅ 行情服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="美股行情与分析服务",
    description=(
        "美股行情聚合与分析微服务，提供以下功能：\n"
        "- 📊 报价 / 详情 / 日线 / 搜索（Finnhub → Twelve Data → Polygon 自动回退）\n"
        "- ⭐ 自选股与指数快照、最近搜索\n"
        "- 📈 技术指标（SMA / EMA / RSI / MACD / 布林带）与支撑阻力位\n"
        "- 🧠 AI 分析（本地引擎 / Gemini / 模拟），含形态识别、洞察与问答\n"
        "- 🗄️ 持久化缓存（MongoDB → Redis → 进程内存）\n\n"
        "**分层架构**\n"
        "```\n"
        "Acquisition Layer  ← 提供商回退链\n"
        "Cache Layer        ← 报价 / K 线 / 分析持久化缓存\n"
        "Processing Layer   ← OHLCV 清洗、标准化\n"
        "Analysis Layer     ← 技术指标、价位推导、AI 编排\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 异常处理 ──────────────────────────────────────────────
@app.exception_handler(MarketServiceError)
async def market_error_handler(request: Request, exc: MarketServiceError):
    status_code = ERROR_STATUS.get(exc.kind, 502)
    logger.warning(f"请求失败 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse.from_error(exc).model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ApiResponse.fail(error="内部服务错误", message=str(exc)).model_dump(mode="json"),
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(stocks.router)
app.include_router(watchlist.router)
app.include_router(technical.router)
app.include_router(analysis.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Market Data Service",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "market_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )

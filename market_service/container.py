"""
服务装配
所有组件在这里一次性构造并注入依赖，路由通过 app.state.container 取用；
样例数据模式下所有回退链都只包含 SampleDataProvider。
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx

from market_service.ai.gemini import GeminiAIService
from market_service.ai.mock import MockAIService
from market_service.ai.on_device import OnDeviceAIService
from market_service.config import ServiceSettings
from market_service.db.store import RecordStore
from market_service.layers.acquisition import DataRouter
from market_service.layers.cache import CacheGateway
from market_service.providers.finnhub import FinnhubProvider
from market_service.providers.polygon import PolygonProvider
from market_service.providers.sample import SampleDataProvider
from market_service.providers.twelve_data import TwelveDataProvider
from market_service.services.ai_orchestrator import AIOrchestrator
from market_service.services.analysis_service import AnalysisService
from market_service.services.market_data_service import MarketDataService
from market_service.services.watchlist_service import RecentSearches, WatchlistService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: ServiceSettings
    store: RecordStore
    cache: CacheGateway
    router: DataRouter
    market_data: MarketDataService
    orchestrator: AIOrchestrator
    analysis: AnalysisService
    watchlist: WatchlistService
    recent_searches: RecentSearches


def build_router(
    settings: ServiceSettings,
    http_client: httpx.AsyncClient,
    clock: Callable[[], float] = time.time,
) -> DataRouter:
    """按配置构造数据路由"""
    ttl = settings.PROVIDER_CACHE_TTL
    if settings.USE_MOCK_DATA:
        logger.info("🎭 样例数据模式：所有数据请求由 SampleDataProvider 响应")
        sample = SampleDataProvider(cache_ttl=ttl, clock=clock)
        return DataRouter([sample], [sample], [sample], [sample])

    finnhub = FinnhubProvider(http_client, settings.FINNHUB_API_KEY, ttl, clock)
    twelve_data = TwelveDataProvider(http_client, settings.TWELVE_DATA_API_KEY, ttl, clock)
    polygon = PolygonProvider(http_client, settings.POLYGON_API_KEY, ttl, clock)
    return DataRouter(
        quote_chain=[finnhub, twelve_data, polygon],
        history_chain=[twelve_data, polygon],
        search_chain=[finnhub, twelve_data, polygon],
        details_chain=[finnhub, twelve_data, polygon],
    )


def build_container(
    settings: ServiceSettings,
    store: RecordStore,
    http_client: httpx.AsyncClient,
    clock: Callable[[], float] = time.time,
) -> ServiceContainer:
    cache = CacheGateway(store, settings, clock)
    router = build_router(settings, http_client, clock)
    market_data = MarketDataService(router, cache)

    orchestrator = AIOrchestrator(
        on_device=OnDeviceAIService(enabled=settings.ON_DEVICE_AI_ENABLED),
        cloud=GeminiAIService(http_client, settings.GEMINI_API_KEY, settings.GEMINI_MODEL),
        mock=MockAIService(),
        cache=cache,
        use_mock_data=settings.USE_MOCK_DATA,
        has_cloud_credentials=settings.has_cloud_ai_credentials,
    )

    container = ServiceContainer(
        settings=settings,
        store=store,
        cache=cache,
        router=router,
        market_data=market_data,
        orchestrator=orchestrator,
        analysis=AnalysisService(market_data, orchestrator, settings),
        watchlist=WatchlistService(
            store,
            market_data,
            default_tickers=settings.DEFAULT_WATCHLIST,
            index_tickers=settings.MARKET_INDICES,
        ),
        recent_searches=RecentSearches(store),
    )
    logger.info(
        f"✅ 服务装配完成: 存储={store.backend}, "
        f"提供商={[p.name for p in router.providers]}"
    )
    return container

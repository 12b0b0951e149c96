"""
AI 分析编排
  选择：样例模式 → mock；本地引擎可用 → on_device；有 Gemini 凭证 → gemini；否则 mock
  回退：on_device 调用失败时同步重试一次 gemini，其结果或错误即为最终结果
  价位：结果不带支撑阻力位时，用同一份报价 + 历史本地计算后合并
  缓存：(ticker, provider, kind) 为键，先查进程内存，再查持久化缓存（3600 秒）
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from market_service.ai.base import AIService, prepare_inputs
from market_service.ai.gemini import GeminiAIService
from market_service.ai.mock import MockAIService
from market_service.ai.on_device import OnDeviceAIService
from market_service.layers.cache import CacheGateway
from market_service.layers.levels import derive_levels
from market_service.models.analysis import (
    AIAnalysis,
    AIProviderId,
    AnalysisKind,
    Pattern,
)
from market_service.models.market import PriceHistory, Quote

logger = logging.getLogger(__name__)

T = TypeVar("T")
CacheKey = Tuple[str, AIProviderId, AnalysisKind]


class AIOrchestrator:
    """AI 服务选择、回退、价位合并与双层缓存"""

    def __init__(
        self,
        on_device: OnDeviceAIService,
        cloud: GeminiAIService,
        mock: MockAIService,
        cache: CacheGateway,
        use_mock_data: bool = False,
        has_cloud_credentials: bool = False,
    ):
        self._on_device = on_device
        self._cloud = cloud
        self._mock = mock
        self._cache = cache
        self._use_mock_data = use_mock_data
        self._has_cloud_credentials = has_cloud_credentials
        self._memory: Dict[CacheKey, AIAnalysis] = {}

    # ── 选择 ──────────────────────────────────────────────

    def select_provider(self) -> AIService:
        """每次调用重新判断（不缓存选择结果）"""
        if self._use_mock_data:
            logger.info("🎭 使用模拟 AI（样例数据模式）")
            return self._mock
        if self._on_device.is_available():
            logger.info("🧠 使用本地分析引擎")
            return self._on_device
        if self._has_cloud_credentials:
            logger.info("✨ 使用 Gemini 云端分析")
            return self._cloud
        logger.info("🎭 使用模拟 AI（无可用分析服务）")
        return self._mock

    def service_for(self, provider: AIProviderId) -> AIService:
        return {
            AIProviderId.ON_DEVICE: self._on_device,
            AIProviderId.GEMINI: self._cloud,
            AIProviderId.MOCK: self._mock,
        }[provider]

    def _resolve(self, force_provider: Optional[AIProviderId]) -> AIService:
        if force_provider is not None:
            return self.service_for(force_provider)
        return self.select_provider()

    async def _invoke(
        self,
        service: AIService,
        operation: str,
        call: Callable[[AIService], Awaitable[T]],
    ) -> Tuple[T, AIService]:
        """调用服务，返回 (结果, 实际给出结果的服务)"""
        try:
            return await call(service), service
        except Exception as exc:
            if service.provider_id is not AIProviderId.ON_DEVICE:
                logger.error(f"❌ {service.provider_id.value} {operation} 失败: {exc}")
                raise
            logger.warning(f"⚠️ 本地引擎 {operation} 失败，改用 Gemini 重试一次: {exc}")
            return await call(self._cloud), self._cloud

    # ── 分析 ──────────────────────────────────────────────

    async def analyze(
        self,
        quote: Quote,
        history: PriceHistory,
        kind: AnalysisKind = AnalysisKind.GENERAL,
        force_provider: Optional[AIProviderId] = None,
        force_refresh: bool = False,
    ) -> AIAnalysis:
        """
        分析入口

        Args:
            force_provider: 指定分析服务（跳过自动选择）
            force_refresh: 跳过两层缓存读取，结果仍写回
        """
        service = self._resolve(force_provider)
        selected = service.provider_id
        key: CacheKey = (quote.ticker, selected, kind)

        if not force_refresh:
            cached = self._memory.get(key)
            if cached is not None:
                logger.debug(f"分析命中内存缓存: {key}")
                return cached
            cached = await self._cache.get_analysis(quote.ticker, selected, kind)
            if cached is not None:
                self._memory[key] = cached
                return cached

        logger.info(f"📊 分析 {quote.ticker}（{kind.label}，{selected.value}）")
        analysis, producer = await self._invoke(
            service, "分析", lambda s: s.analyze(quote, history, kind)
        )
        if analysis.provider is not producer.provider_id:
            analysis = analysis.model_copy(update={"provider": producer.provider_id})
        analysis = self.merge_levels(analysis, quote, history)

        self._memory[key] = analysis
        await self._cache.put_analysis(quote.ticker, selected, kind, analysis)
        logger.info(f"✅ 分析完成: {quote.ticker}（{analysis.provider.value}）")
        return analysis

    @staticmethod
    def merge_levels(analysis: AIAnalysis, quote: Quote, history: PriceHistory) -> AIAnalysis:
        """结果不带价位时本地计算并生成新的分析对象"""
        if analysis.technical_levels:
            return analysis
        enhanced, indicators = prepare_inputs(quote, history)
        levels = derive_levels(
            enhanced.current_price, indicators, enhanced.week52_high, enhanced.week52_low
        )
        return analysis.model_copy(update={"technical_levels": levels})

    def invalidate(self) -> int:
        """清空内存层（持久化层不受影响）"""
        count = len(self._memory)
        self._memory.clear()
        logger.info(f"🔄 内存分析缓存已清空（{count} 条）")
        return count

    async def refresh(
        self,
        quote: Quote,
        history: PriceHistory,
        kind: AnalysisKind = AnalysisKind.GENERAL,
        force_provider: Optional[AIProviderId] = None,
    ) -> AIAnalysis:
        self.invalidate()
        return await self.analyze(quote, history, kind, force_provider)

    # ── 其他能力 ──────────────────────────────────────────

    async def detect_patterns(
        self, history: PriceHistory, force_provider: Optional[AIProviderId] = None
    ) -> List[Pattern]:
        service = self._resolve(force_provider)
        patterns, _ = await self._invoke(
            service, "形态识别", lambda s: s.detect_patterns(history)
        )
        return patterns

    async def generate_insights(
        self,
        quote: Quote,
        history: PriceHistory,
        force_provider: Optional[AIProviderId] = None,
    ) -> str:
        enhanced, indicators = prepare_inputs(quote, history)
        service = self._resolve(force_provider)
        insights, _ = await self._invoke(
            service, "洞察生成", lambda s: s.generate_insights(enhanced, indicators)
        )
        return insights

    async def answer_question(
        self,
        question: str,
        quote: Quote,
        context: str = "",
        force_provider: Optional[AIProviderId] = None,
    ) -> str:
        service = self._resolve(force_provider)
        answer, _ = await self._invoke(
            service, "问答", lambda s: s.answer_question(question, quote, context)
        )
        return answer

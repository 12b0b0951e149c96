"""
分析服务
为 AI 编排器与技术面接口准备输入：报价 + 足够长的日线历史。
历史不足 MIN_ANALYSIS_HISTORY_POINTS 条时补拉 ANALYSIS_HISTORY_DAYS 天；补拉失败则沿用已有历史。
"""

import logging
from datetime import date, timedelta
from typing import Callable, List, Optional

from market_service.ai.base import prepare_inputs
from market_service.config import ServiceSettings
from market_service.layers.indicators import is_volume_above_average
from market_service.layers.levels import derive_levels
from market_service.models.analysis import (
    AIAnalysis,
    AIProviderId,
    AnalysisKind,
    Pattern,
    TechnicalSnapshot,
)
from market_service.models.market import PriceHistory, Quote
from market_service.services.ai_orchestrator import AIOrchestrator
from market_service.services.market_data_service import MarketDataService

logger = logging.getLogger(__name__)


class AnalysisService:
    """技术面与 AI 分析业务服务"""

    def __init__(
        self,
        market_data: MarketDataService,
        orchestrator: AIOrchestrator,
        settings: ServiceSettings,
        today: Callable[[], date] = date.today,
    ):
        self._market_data = market_data
        self._orchestrator = orchestrator
        self._settings = settings
        self._today = today

    @property
    def orchestrator(self) -> AIOrchestrator:
        return self._orchestrator

    # ── 输入准备 ──────────────────────────────────────────

    def _empty_history(self, ticker: str) -> PriceHistory:
        today = self._today()
        return PriceHistory(ticker=ticker, start=today, end=today, bars=[])

    async def ensure_history(
        self, ticker: str, history: Optional[PriceHistory] = None
    ) -> PriceHistory:
        """历史不足时补拉更长区间，失败时保留原历史"""
        if history is None:
            history = self._empty_history(ticker)
        if len(history) >= self._settings.MIN_ANALYSIS_HISTORY_POINTS:
            return history

        end = self._today()
        start = end - timedelta(days=self._settings.ANALYSIS_HISTORY_DAYS)
        try:
            extended = await self._market_data.get_history(ticker, start, end)
        except Exception as exc:
            logger.warning(
                f"⚠️ {ticker} 补拉 {self._settings.ANALYSIS_HISTORY_DAYS} 天历史失败，"
                f"沿用已有 {len(history)} 条: {exc}"
            )
            return history

        logger.info(f"🔄 {ticker} 历史由 {len(history)} 条扩展为 {len(extended)} 条")
        return extended if len(extended) > len(history) else history

    async def _inputs(self, ticker: str, history: Optional[PriceHistory]):
        quote = await self._market_data.get_quote(ticker)
        history = await self.ensure_history(quote.ticker, history)
        return quote, history

    # ── 技术面 ────────────────────────────────────────────

    async def technicals(self, ticker: str) -> TechnicalSnapshot:
        """指标 + 支撑阻力位（纯本地计算，不调用 AI）"""
        quote, history = await self._inputs(ticker, None)
        enhanced, indicators = prepare_inputs(quote, history)
        return TechnicalSnapshot(
            ticker=quote.ticker,
            current_price=quote.current_price,
            bars=len(history),
            indicators=indicators,
            levels=derive_levels(
                enhanced.current_price, indicators, enhanced.week52_high, enhanced.week52_low
            ),
            volume_above_average=is_volume_above_average(quote.volume, history.volumes),
        )

    # ── AI ────────────────────────────────────────────────

    async def analyze(
        self,
        ticker: str,
        kind: AnalysisKind = AnalysisKind.GENERAL,
        history: Optional[PriceHistory] = None,
        force_provider: Optional[AIProviderId] = None,
        force_refresh: bool = False,
    ) -> AIAnalysis:
        quote, history = await self._inputs(ticker, history)
        return await self._orchestrator.analyze(
            quote, history, kind, force_provider=force_provider, force_refresh=force_refresh
        )

    async def refresh(
        self,
        ticker: str,
        kind: AnalysisKind = AnalysisKind.GENERAL,
        force_provider: Optional[AIProviderId] = None,
    ) -> AIAnalysis:
        quote, history = await self._inputs(ticker, None)
        return await self._orchestrator.refresh(quote, history, kind, force_provider)

    async def patterns(
        self, ticker: str, force_provider: Optional[AIProviderId] = None
    ) -> List[Pattern]:
        _, history = await self._inputs(ticker, None)
        return await self._orchestrator.detect_patterns(history, force_provider)

    async def insights(self, ticker: str, force_provider: Optional[AIProviderId] = None) -> str:
        quote, history = await self._inputs(ticker, None)
        return await self._orchestrator.generate_insights(quote, history, force_provider)

    async def answer(
        self,
        ticker: str,
        question: str,
        context: str = "",
        force_provider: Optional[AIProviderId] = None,
    ) -> str:
        quote: Quote = await self._market_data.get_quote(ticker)
        return await self._orchestrator.answer_question(question, quote, context, force_provider)

"""
本地规则分析引擎
不依赖网络：情绪按日涨跌幅判断，要点来自 RSI / SMA20 / MACD / 成交量，
建议价位区间随分析类型（综合 / 一周 / 一月）变化。
"""

import logging
from typing import List

from market_service.ai.base import (
    AIService,
    daily_sentiment,
    prepare_inputs,
    trend_patterns,
    volume_note,
)
from market_service.errors import InvalidRequestError
from market_service.layers.levels import derive_levels
from market_service.models.analysis import (
    AIAnalysis,
    AIProviderId,
    AnalysisKind,
    IndicatorBundle,
    Pattern,
    Sentiment,
)
from market_service.models.market import PriceHistory, Quote

logger = logging.getLogger(__name__)

# kind → (看多目标倍数, 看空支撑倍数, 区间下沿, 区间上沿)
_KIND_RANGES = {
    AnalysisKind.GENERAL: (1.05, 0.95, 0.97, 1.03),
    AnalysisKind.WEEK_FORECAST: (1.03, 0.97, 0.98, 1.02),
    AnalysisKind.MONTH_FORECAST: (1.08, 0.92, 0.95, 1.05),
}

_HORIZON = {
    AnalysisKind.GENERAL: "",
    AnalysisKind.WEEK_FORECAST: " over the next week",
    AnalysisKind.MONTH_FORECAST: " over the next month",
}


class OnDeviceAIService(AIService):
    provider_id = AIProviderId.ON_DEVICE

    def __init__(self, enabled: bool = False):
        self._enabled = enabled

    def is_available(self) -> bool:
        """静态能力检查（由配置决定，不做试调用）"""
        return self._enabled

    def _ensure_available(self) -> None:
        if not self._enabled:
            raise InvalidRequestError("on-device analyzer is not available", "on_device")

    async def analyze(
        self, quote: Quote, history: PriceHistory, kind: AnalysisKind = AnalysisKind.GENERAL
    ) -> AIAnalysis:
        self._ensure_available()
        enhanced, indicators = prepare_inputs(quote, history)
        sentiment = daily_sentiment(enhanced)

        return AIAnalysis(
            summary=self._summary(enhanced, sentiment, kind),
            sentiment=sentiment,
            key_points=self._key_points(enhanced, indicators),
            patterns=trend_patterns(history),
            technical_levels=derive_levels(
                enhanced.current_price, indicators, enhanced.week52_high, enhanced.week52_low
            ),
            recommendation=self._recommendation(enhanced.current_price, sentiment, kind),
            confidence=0.70 if sentiment is Sentiment.NEUTRAL else 0.85,
            provider=self.provider_id,
        )

    async def detect_patterns(self, history: PriceHistory) -> List[Pattern]:
        self._ensure_available()
        return trend_patterns(history)

    async def generate_insights(self, quote: Quote, indicators: IndicatorBundle) -> str:
        self._ensure_available()
        insights: List[str] = []
        if indicators.rsi is not None:
            if indicators.rsi > 70:
                insights.append("RSI indicates overbought conditions")
            elif indicators.rsi < 30:
                insights.append("RSI indicates oversold conditions")
            else:
                insights.append("RSI shows healthy momentum")

        if indicators.sma20 is not None and indicators.sma50 is not None:
            price = quote.current_price
            if price > indicators.sma20 and price > indicators.sma50:
                insights.append("Price above key moving averages, indicating uptrend")
            elif price < indicators.sma20 and price < indicators.sma50:
                insights.append("Price below key moving averages, indicating downtrend")

        return ". ".join(insights)

    async def answer_question(self, question: str, quote: Quote, context: str) -> str:
        self._ensure_available()
        lowered = question.lower()
        if "buy" in lowered:
            return (
                "Based on current indicators, consider your risk tolerance and "
                "investment goals before making decisions."
            )
        if "sell" in lowered:
            return (
                "Review the technical analysis and your investment strategy to "
                "determine if selling aligns with your goals."
            )
        return (
            f"I can help analyze {quote.ticker} using technical indicators. "
            "What specific aspect would you like to know more about?"
        )

    # ── 文本生成 ──────────────────────────────────────────

    @staticmethod
    def _summary(quote: Quote, sentiment: Sentiment, kind: AnalysisKind) -> str:
        direction = "up" if quote.is_positive else "down"
        outlook = {
            Sentiment.BULLISH: "bullish momentum",
            Sentiment.BEARISH: "bearish pressure",
            Sentiment.NEUTRAL: "neutral consolidation",
        }[sentiment]
        return (
            f"{quote.company_name} ({quote.ticker}) is trading at ${quote.current_price:.2f}, "
            f"{direction} {abs(quote.daily_change_percent):.2f}% today. "
            f"Technical analysis suggests {outlook}{_HORIZON[kind]}."
        )

    @staticmethod
    def _key_points(quote: Quote, ind: IndicatorBundle) -> List[str]:
        points: List[str] = []
        if ind.rsi is not None:
            rsi = int(ind.rsi)
            if ind.rsi > 70:
                points.append(f"RSI at {rsi} indicates overbought conditions, potential pullback ahead")
            elif ind.rsi < 30:
                points.append(f"RSI at {rsi} indicates oversold conditions, potential bounce opportunity")
            else:
                points.append(f"RSI at {rsi} shows healthy momentum with room to move")

        if ind.sma20:
            pct = (quote.current_price - ind.sma20) / ind.sma20 * 100
            points.append(f"Price {'above' if pct > 0 else 'below'} 20-day MA by {abs(pct):.1f}%")

        if ind.macd is not None:
            rising = ind.macd.histogram > 0
            points.append(
                f"MACD {'positive' if rising else 'negative'}, "
                f"momentum {'building' if rising else 'weakening'}"
            )

        points.append(volume_note(quote))
        return points

    @staticmethod
    def _recommendation(price: float, sentiment: Sentiment, kind: AnalysisKind) -> str:
        upside, downside, band_low, band_high = _KIND_RANGES[kind]
        if sentiment is Sentiment.BULLISH:
            return (
                "Technical indicators support upward momentum. Consider positions on dips. "
                f"Watch for resistance near ${price * upside:.2f}."
            )
        if sentiment is Sentiment.BEARISH:
            return (
                "Caution advised as indicators show weakness. Wait for stabilization. "
                f"Support expected around ${price * downside:.2f}."
            )
        return (
            "Mixed signals suggest range-bound trading. Hold positions and wait for clearer "
            f"direction between ${price * band_low:.2f}-${price * band_high:.2f}."
        )

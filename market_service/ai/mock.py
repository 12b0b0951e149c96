"""
确定性模拟分析（样例数据模式 / 无任何可用 AI 时的兜底）
相同输入得到相同结果（fetched_at 除外）：id 由输入派生，不含支撑阻力位，
价位由编排器统一计算。
"""

import uuid
from typing import List

from market_service.ai.base import (
    AIService,
    daily_sentiment,
    format_market_cap,
    market_cap_category,
    trend_patterns,
)
from market_service.models.analysis import (
    AIAnalysis,
    AIProviderId,
    AnalysisKind,
    IndicatorBundle,
    Pattern,
    PatternSignificance,
    Sentiment,
)
from market_service.models.market import PriceHistory, Quote

_PATTERNS = {
    Sentiment.BULLISH: [
        Pattern(
            name="Ascending Triangle",
            description="Bullish continuation pattern suggesting upward breakout potential",
            significance=PatternSignificance.HIGH,
        ),
        Pattern(
            name="Golden Cross",
            description="50-day MA crossing above 200-day MA, strong bullish signal",
            significance=PatternSignificance.MEDIUM,
        ),
    ],
    Sentiment.BEARISH: [
        Pattern(
            name="Head and Shoulders",
            description="Bearish reversal pattern indicating potential downside",
            significance=PatternSignificance.HIGH,
        ),
    ],
    Sentiment.NEUTRAL: [
        Pattern(
            name="Symmetrical Triangle",
            description="Consolidation pattern, breakout direction uncertain",
            significance=PatternSignificance.MEDIUM,
        ),
    ],
}


def _analysis_id(quote: Quote, kind: AnalysisKind) -> uuid.UUID:
    seed = (
        f"{quote.ticker}:{kind.value}:{quote.current_price}:"
        f"{quote.daily_change}:{quote.daily_change_percent}"
    )
    return uuid.uuid5(uuid.NAMESPACE_OID, seed)


class MockAIService(AIService):
    provider_id = AIProviderId.MOCK

    async def analyze(
        self, quote: Quote, history: PriceHistory, kind: AnalysisKind = AnalysisKind.GENERAL
    ) -> AIAnalysis:
        positive = quote.is_positive
        sentiment = daily_sentiment(quote)
        tone = {
            Sentiment.BULLISH: "strong momentum",
            Sentiment.BEARISH: "weakness",
            Sentiment.NEUTRAL: "consolidation",
        }[sentiment]
        summary = (
            f"{quote.company_name} ({quote.ticker}) is currently trading at "
            f"${quote.current_price:.2f}, {'up' if positive else 'down'} "
            f"{abs(quote.daily_change_percent):.2f}% today. The stock shows {tone} "
            f"with {'buyers in control' if positive else 'selling pressure evident'}."
        )

        reference = quote.avg_volume if quote.avg_volume is not None else quote.volume
        heavy = quote.volume > reference
        market_cap = quote.market_cap or 0
        key_points = [
            f"Price is {'above' if positive else 'below'} key moving averages, "
            f"indicating {'uptrend' if positive else 'downtrend'}",
            f"Volume is {'above' if heavy else 'below'} average, "
            f"suggesting {'strong' if heavy else 'weak'} conviction",
            f"Market cap of {format_market_cap(market_cap)} positions it as a "
            f"{market_cap_category(market_cap)} stock",
            "Momentum indicators suggest continuation potential"
            if positive else "Support levels may provide buying opportunities",
        ]

        price = quote.current_price
        recommendation = {
            Sentiment.BULLISH: (
                "Consider accumulating on dips. Strong fundamentals support current valuation. "
                f"Watch for resistance near ${price * 1.05:.2f}."
            ),
            Sentiment.BEARISH: (
                "Exercise caution. Wait for stabilization before entering. "
                f"Support expected around ${price * 0.95:.2f}."
            ),
            Sentiment.NEUTRAL: (
                "Hold current positions. Wait for clearer directional signals. "
                f"Range-bound trading likely between ${price * 0.97:.2f} - ${price * 1.03:.2f}."
            ),
        }[sentiment]

        return AIAnalysis(
            id=_analysis_id(quote, kind),
            summary=summary,
            sentiment=sentiment,
            key_points=key_points,
            patterns=list(_PATTERNS[sentiment]),
            technical_levels=[],
            recommendation=recommendation,
            confidence=0.65 if sentiment is Sentiment.NEUTRAL else 0.82,
            provider=self.provider_id,
        )

    async def detect_patterns(self, history: PriceHistory) -> List[Pattern]:
        return trend_patterns(history)

    async def generate_insights(self, quote: Quote, indicators: IndicatorBundle) -> str:
        direction = "above" if quote.is_positive else "below"
        parts = [f"{quote.ticker} is trading {direction} its previous close"]
        if indicators.rsi is not None:
            parts.append(f"RSI stands at {indicators.rsi:.0f}")
        if indicators.sma20 is not None:
            parts.append(f"The 20-day average sits at ${indicators.sma20:.2f}")
        return ". ".join(parts) + "."

    async def answer_question(self, question: str, quote: Quote, context: str) -> str:
        return (
            f"Sample answer for {quote.ticker}: live AI analysis is disabled, "
            "so this response is generated from sample data."
        )

"""
AI 分析服务契约
analyze / detect_patterns / generate_insights / answer_question
"""

from abc import ABC, abstractmethod
from typing import List, Tuple

from market_service.layers.indicators import compute_indicators
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

TREND_THRESHOLD_PERCENT = 5.0
SENTIMENT_THRESHOLD_PERCENT = 1.5


class AIService(ABC):
    provider_id: AIProviderId

    @abstractmethod
    async def analyze(
        self, quote: Quote, history: PriceHistory, kind: AnalysisKind = AnalysisKind.GENERAL
    ) -> AIAnalysis:
        ...

    @abstractmethod
    async def detect_patterns(self, history: PriceHistory) -> List[Pattern]:
        ...

    @abstractmethod
    async def generate_insights(self, quote: Quote, indicators: IndicatorBundle) -> str:
        ...

    @abstractmethod
    async def answer_question(self, question: str, quote: Quote, context: str) -> str:
        ...


# ── 共用工具 ──────────────────────────────────────────────

def prepare_inputs(quote: Quote, history: PriceHistory) -> Tuple[Quote, IndicatorBundle]:
    """
    计算指标，并用历史收盘价的最高 / 最低值覆盖报价中的 52 周高低点

    历史为空时报价保持不变。
    """
    indicators = compute_indicators(history)
    closes = history.closes
    if closes:
        quote = quote.model_copy(update={
            "week52_high": max(closes),
            "week52_low": min(closes),
        })
    return quote, indicators


def daily_sentiment(quote: Quote) -> Sentiment:
    """日涨跌幅超过 ±1.5% 判为多 / 空，否则中性"""
    if quote.daily_change_percent > SENTIMENT_THRESHOLD_PERCENT:
        return Sentiment.BULLISH
    if quote.daily_change_percent < -SENTIMENT_THRESHOLD_PERCENT:
        return Sentiment.BEARISH
    return Sentiment.NEUTRAL


def trend_patterns(history: PriceHistory) -> List[Pattern]:
    """区间首尾收盘价变化超过 ±5% 时给出趋势形态"""
    closes = history.closes
    if len(closes) < 2 or closes[0] == 0:
        return []
    change = (closes[-1] - closes[0]) / closes[0] * 100
    if change > TREND_THRESHOLD_PERCENT:
        return [Pattern(
            name="Uptrend",
            description="Strong upward price movement over the period",
            significance=PatternSignificance.HIGH,
        )]
    if change < -TREND_THRESHOLD_PERCENT:
        return [Pattern(
            name="Downtrend",
            description="Strong downward price movement over the period",
            significance=PatternSignificance.HIGH,
        )]
    return []


def volume_note(quote: Quote) -> str:
    above = quote.volume > (quote.avg_volume if quote.avg_volume is not None else quote.volume)
    return (
        f"Volume {'above' if above else 'below'} average, "
        f"indicating {'strong' if above else 'weak'} conviction"
    )


def format_compact(value: float) -> str:
    """1.2T / 3.4B / 5.6M / 7.8K"""
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(value) >= threshold:
            return f"{value / threshold:.1f}{suffix}"
    return f"{value:.0f}"


def format_market_cap(market_cap: float) -> str:
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M")):
        if market_cap >= threshold:
            return f"${market_cap / threshold:.1f}{suffix}"
    return f"${market_cap:.0f}"


def market_cap_category(market_cap: float) -> str:
    if market_cap >= 200e9:
        return "mega-cap"
    if market_cap >= 10e9:
        return "large-cap"
    if market_cap >= 2e9:
        return "mid-cap"
    return "small-cap"

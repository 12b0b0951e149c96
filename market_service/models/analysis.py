"""技术指标、支撑阻力位与 AI 分析模型"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── 技术指标 ──────────────────────────────────────────────

class MACDResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    macd: float
    signal: float
    histogram: float


class BollingerBands(BaseModel):
    model_config = ConfigDict(frozen=True)

    upper: float
    middle: float
    lower: float


class IndicatorBundle(BaseModel):
    """指标集合：数据点不足的字段保持 None，这是正常的终态"""

    model_config = ConfigDict(frozen=True)

    sma20: Optional[float] = None
    sma50: Optional[float] = None
    sma200: Optional[float] = None
    rsi: Optional[float] = None
    macd: Optional[MACDResult] = None
    bollinger: Optional[BollingerBands] = None
    average_volume: Optional[float] = None


# ── 支撑 / 阻力位 ─────────────────────────────────────────

class LevelKind(str, Enum):
    MAJOR_RESISTANCE = "major_resistance"
    NEAR_RESISTANCE = "near_resistance"
    PIVOT_SUPPORT = "pivot_support"
    STRONG_SUPPORT = "strong_support"
    MINOR_SUPPORT = "minor_support"
    MINOR_RESISTANCE = "minor_resistance"


class TechnicalLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: LevelKind
    price: float
    rationale: str


# ── AI 分析 ───────────────────────────────────────────────

class Sentiment(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


def normalize_sentiment(value: object) -> Sentiment:
    """
    将任意情绪描述归一为三种情绪之一

    优先级：包含 "bullish" → bullish；否则包含 "bearish" → bearish；否则 neutral。
    注意这是有损的子串匹配，"not bullish" 也会被判为 bullish。
    """
    raw = str(value or "").lower()
    if "bullish" in raw:
        return Sentiment.BULLISH
    if "bearish" in raw:
        return Sentiment.BEARISH
    return Sentiment.NEUTRAL


class PatternSignificance(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Pattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    significance: PatternSignificance


class AnalysisKind(str, Enum):
    GENERAL = "general"
    MONTH_FORECAST = "month_forecast"
    WEEK_FORECAST = "week_forecast"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]


_KIND_LABELS = {
    AnalysisKind.GENERAL: "General Analysis",
    AnalysisKind.MONTH_FORECAST: "1-Month Forecast",
    AnalysisKind.WEEK_FORECAST: "1-Week Forecast",
}


class AIProviderId(str, Enum):
    ON_DEVICE = "on_device"
    GEMINI = "gemini"
    MOCK = "mock"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class AIAnalysis(BaseModel):
    """AI 分析结果（不可变；"新"分析总是新的值）"""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    summary: str
    sentiment: Sentiment
    key_points: List[str] = Field(default_factory=list)
    patterns: List[Pattern] = Field(default_factory=list)
    technical_levels: List[TechnicalLevel] = Field(default_factory=list)
    recommendation: str
    confidence: float = Field(ge=0.0, le=1.0)
    provider: AIProviderId
    fetched_at: datetime = Field(default_factory=_utcnow)


class TechnicalSnapshot(BaseModel):
    """某代码当前的指标与价位（不经过 AI）"""

    ticker: str
    current_price: float
    bars: int
    indicators: IndicatorBundle
    levels: List[TechnicalLevel] = Field(default_factory=list)
    volume_above_average: bool = False

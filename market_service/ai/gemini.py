"""
Gemini 云端分析服务
调用 generateContent 接口取回文本，再用 parsing 模块容错解析；支撑阻力位始终本地计算。
"""

import logging
from typing import List

import httpx

from market_service.ai.base import AIService, format_compact, prepare_inputs
from market_service.ai.parsing import parse_analysis, parse_patterns
from market_service.errors import MalformedResponseError, MissingCredentialError
from market_service.layers.levels import derive_levels
from market_service.models.analysis import (
    AIAnalysis,
    AIProviderId,
    AnalysisKind,
    IndicatorBundle,
    Pattern,
)
from market_service.models.market import PriceHistory, Quote
from market_service.network import request_json

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
PATTERN_WINDOW = 30

_JSON_SCHEMA_GENERAL = """
Respond ONLY with valid JSON in this exact format:
{
  "summary": "Brief 2-3 sentence overview",
  "sentiment": "bullish" or "bearish" or "neutral",
  "keyPoints": ["point 1", "point 2", "point 3"],
  "patterns": [{"name": "pattern name", "description": "what it means", "significance": "high/medium/low"}],
  "recommendation": "Brief recommendation",
  "confidence": 0.85
}"""

_JSON_SCHEMA_MONTH = """
Focus on:
- Monthly support/resistance zones
- 30-day trend projection
- Key price targets for the month
- Potential breakout/breakdown levels

Respond ONLY with valid JSON:
{
  "summary": "2-3 sentence 30-day outlook",
  "sentiment": "bullish/bearish/neutral",
  "keyPoints": ["monthly insight 1", "monthly insight 2", "monthly insight 3"],
  "patterns": [{"name": "pattern", "description": "monthly significance", "significance": "high/medium/low"}],
  "recommendation": "30-day trading strategy",
  "confidence": 0.85
}"""

_JSON_SCHEMA_WEEK = """
Focus on:
- Daily support/resistance levels
- Short-term momentum (next 5-7 days)
- Intraday volatility expectations
- Immediate price targets

Respond ONLY with valid JSON:
{
  "summary": "2-3 sentence 7-day outlook",
  "sentiment": "bullish/bearish/neutral",
  "keyPoints": ["daily insight 1", "daily insight 2", "daily insight 3"],
  "patterns": [{"name": "pattern", "description": "short-term significance", "significance": "high/medium/low"}],
  "recommendation": "7-day trading strategy",
  "confidence": 0.85
}"""


# ── 提示词 ────────────────────────────────────────────────

def _range_line(quote: Quote) -> str:
    return f"52-Week Range: ${quote.week52_low or 0:,.2f} - ${quote.week52_high or 0:,.2f}"


def build_analysis_prompt(quote: Quote, ind: IndicatorBundle) -> str:
    sign = "+" if quote.daily_change >= 0 else ""
    lines = [
        "Analyze this stock and provide a structured analysis in JSON format.",
        "",
        f"Stock: {quote.ticker} ({quote.company_name})",
        f"Current Price: ${quote.current_price:,.2f}",
        f"Daily Change: {quote.daily_change_percent:+.2f}% ({sign}{quote.daily_change:,.2f})",
        _range_line(quote),
        f"Market Cap: {format_compact(quote.market_cap or 0)}",
        "",
        "Technical Indicators:",
    ]
    if ind.rsi is not None:
        lines.append(f"- RSI (14): {ind.rsi:.2f}")
    if ind.macd is not None:
        lines.append(f"- MACD: {ind.macd.macd:.2f} (Signal: {ind.macd.signal:.2f})")
    if ind.sma20 is not None:
        lines.append(f"- 20-day SMA: ${ind.sma20:.2f}")
    if ind.sma50 is not None:
        lines.append(f"- 50-day SMA: ${ind.sma50:.2f}")
    return "\n".join(lines) + "\n" + _JSON_SCHEMA_GENERAL


def build_month_forecast_prompt(quote: Quote, ind: IndicatorBundle) -> str:
    lines = [
        "Provide a 1-MONTH TECHNICAL FORECAST for this stock in JSON format.",
        "",
        f"Stock: {quote.ticker} ({quote.company_name})",
        f"Current Price: ${quote.current_price:,.2f}",
        f"Daily Change: {quote.daily_change_percent:+.2f}%",
        _range_line(quote),
        "",
        "Technical Indicators:",
    ]
    if ind.rsi is not None:
        lines.append(f"- RSI: {ind.rsi:.2f}")
    if ind.macd is not None:
        lines.append(f"- MACD: {ind.macd.macd:.2f} (Signal: {ind.macd.signal:.2f})")
    if ind.sma20 is not None and ind.sma50 is not None:
        lines.append(f"- 20/50 SMA: ${ind.sma20:.2f} / ${ind.sma50:.2f}")
    return "\n".join(lines) + "\n" + _JSON_SCHEMA_MONTH


def build_week_forecast_prompt(quote: Quote, ind: IndicatorBundle) -> str:
    lines = [
        "Provide a 1-WEEK TECHNICAL FORECAST for this stock in JSON format.",
        "",
        f"Stock: {quote.ticker} ({quote.company_name})",
        f"Current Price: ${quote.current_price:,.2f}",
        f"Daily Change: {quote.daily_change_percent:+.2f}%",
        f"Volume: {format_compact(quote.volume)}",
        "",
        "Technical Indicators:",
    ]
    if ind.rsi is not None:
        lines.append(f"- RSI: {ind.rsi:.2f}")
    if ind.macd is not None:
        lines.append(f"- MACD: {ind.macd.macd:.2f}")
    if ind.sma20 is not None:
        lines.append(f"- 20-day SMA: ${ind.sma20:.2f}")
    if ind.bollinger is not None:
        lines.append(
            f"- Bollinger Bands: ${ind.bollinger.lower:.2f} - ${ind.bollinger.upper:.2f}"
        )
    return "\n".join(lines) + "\n" + _JSON_SCHEMA_WEEK


_PROMPT_BUILDERS = {
    AnalysisKind.GENERAL: build_analysis_prompt,
    AnalysisKind.MONTH_FORECAST: build_month_forecast_prompt,
    AnalysisKind.WEEK_FORECAST: build_week_forecast_prompt,
}


def build_pattern_prompt(history: PriceHistory) -> str:
    recent = history.closes[-PATTERN_WINDOW:]
    return (
        "Analyze these recent stock prices and detect chart patterns:\n"
        f"{', '.join(f'{price:.2f}' for price in recent)}\n\n"
        "Respond with JSON array of patterns:\n"
        '[{"name": "pattern name", "description": "description", "significance": "high/medium/low"}]'
    )


def build_insights_prompt(quote: Quote, ind: IndicatorBundle) -> str:
    lines = [
        f"Provide 3-5 key insights about {quote.ticker} based on current price and technical indicators.",
        "Keep each insight to one sentence.",
        "",
        f"Current Price: ${quote.current_price:,.2f} ({quote.daily_change_percent:+.2f}% today)",
    ]
    if ind.rsi is not None:
        lines.append(f"RSI (14): {ind.rsi:.2f}")
    if ind.sma20 is not None:
        lines.append(f"20-day SMA: ${ind.sma20:.2f}")
    if ind.sma50 is not None:
        lines.append(f"50-day SMA: ${ind.sma50:.2f}")
    return "\n".join(lines)


def build_question_prompt(question: str, quote: Quote, context: str) -> str:
    return (
        f"You are a financial analyst assistant. Answer this question about "
        f"{quote.ticker} ({quote.company_name}):\n\n"
        f"Question: {question}\n\n"
        f"Context:\n{context}\n\n"
        "Provide a concise, helpful answer based on the data provided."
    )


# ── 服务 ──────────────────────────────────────────────────

class GeminiAIService(AIService):
    provider_id = AIProviderId.GEMINI

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.7,
        max_output_tokens: int = 8192,
    ):
        self._client = client
        self._api_key = (api_key or "").strip()
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    def _require_key(self) -> str:
        if not self._api_key:
            raise MissingCredentialError("Gemini API key is not configured", "gemini")
        return self._api_key

    async def generate_content(self, prompt: str) -> str:
        """调用 generateContent，返回第一个候选的文本"""
        key = self._require_key()
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_output_tokens,
            },
        }
        logger.info(f"🌐 调用 Gemini（{self._model}），提示词 {len(prompt)} 字符")
        data = await request_json(
            self._client,
            "POST",
            f"{GEMINI_BASE_URL}/{self._model}:generateContent",
            provider="gemini",
            params={"key": key},
            json=body,
        )
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise MalformedResponseError(f"no text in Gemini response: {exc!r}", "gemini") from exc
        if not isinstance(text, str):
            raise MalformedResponseError("Gemini text part is not a string", "gemini")
        logger.debug(f"Gemini 返回 {len(text)} 字符")
        return text

    async def analyze(
        self, quote: Quote, history: PriceHistory, kind: AnalysisKind = AnalysisKind.GENERAL
    ) -> AIAnalysis:
        self._require_key()
        enhanced, indicators = prepare_inputs(quote, history)
        prompt = _PROMPT_BUILDERS[kind](enhanced, indicators)

        partial = parse_analysis(await self.generate_content(prompt))
        levels = derive_levels(
            enhanced.current_price, indicators, enhanced.week52_high, enhanced.week52_low
        )
        return AIAnalysis(
            summary=partial.summary,
            sentiment=partial.sentiment,
            key_points=partial.key_points,
            patterns=partial.patterns,
            technical_levels=levels,
            recommendation=partial.recommendation,
            confidence=partial.confidence,
            provider=self.provider_id,
        )

    async def detect_patterns(self, history: PriceHistory) -> List[Pattern]:
        self._require_key()
        return parse_patterns(await self.generate_content(build_pattern_prompt(history)))

    async def generate_insights(self, quote: Quote, indicators: IndicatorBundle) -> str:
        self._require_key()
        return await self.generate_content(build_insights_prompt(quote, indicators))

    async def answer_question(self, question: str, quote: Quote, context: str) -> str:
        self._require_key()
        return await self.generate_content(build_question_prompt(question, quote, context))

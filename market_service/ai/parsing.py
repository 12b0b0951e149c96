"""
大模型自由文本解析
模型经常在 JSON 外包一层 ```json 代码块或前后夹杂说明文字：
先去掉代码块标记，再截取第一个 "{" 到最后一个 "}"（形态列表则为 "[" … "]"）。
任何解析失败都归为 malformed_upstream_response。
"""

import json
import logging
import math
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from market_service.errors import MalformedResponseError
from market_service.models.analysis import (
    Pattern,
    PatternSignificance,
    Sentiment,
    normalize_sentiment,
)

logger = logging.getLogger(__name__)

PROVIDER = "gemini"
_SIGNIFICANCE_VALUES = {s.value for s in PatternSignificance}


class PartialAnalysis(BaseModel):
    """模型返回的分析（不含支撑阻力位，价位总在本地计算）"""

    model_config = ConfigDict(populate_by_name=True)

    summary: str
    sentiment: Sentiment
    key_points: List[str] = Field(default_factory=list, alias="keyPoints")
    patterns: List[Pattern] = Field(default_factory=list)
    recommendation: str
    confidence: float

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value: Any) -> Sentiment:
        return normalize_sentiment(value)

    @field_validator("patterns", mode="before")
    @classmethod
    def _patterns(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_coerce_pattern(item) for item in value]
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        confidence = float(value)
        if not math.isfinite(confidence):
            raise ValueError(f"confidence is not finite: {value!r}")
        return min(max(confidence, 0.0), 1.0)


def _coerce_pattern(item: Any) -> Any:
    """significance 统一为小写；无法识别的取 medium"""
    if not isinstance(item, dict):
        return item
    item = dict(item)
    raw = str(item.get("significance") or "").strip().lower()
    item["significance"] = raw if raw in _SIGNIFICANCE_VALUES else "medium"
    return item


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.replace("```json", "").replace("```", "").strip()
    return cleaned


def _slice(text: str, opener: str, closer: str) -> str:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end == -1 or end < start:
        raise MalformedResponseError(f"no {opener}…{closer} block in model output", PROVIDER)
    return text[start:end + 1]


def _loads(fragment: str) -> Any:
    try:
        return json.loads(fragment)
    except ValueError as exc:
        raise MalformedResponseError(f"model output is not valid JSON: {exc}", PROVIDER) from exc


def extract_json_object(text: str) -> dict:
    data = _loads(_slice(_strip_fences(text or ""), "{", "}"))
    if not isinstance(data, dict):
        raise MalformedResponseError("model output is not a JSON object", PROVIDER)
    return data


def parse_analysis(text: str) -> PartialAnalysis:
    data = extract_json_object(text)
    try:
        return PartialAnalysis.model_validate(data)
    except (ValidationError, TypeError, ValueError) as exc:
        logger.warning(f"⚠️ 模型输出字段不完整: {exc}")
        raise MalformedResponseError(f"analysis fields invalid: {exc}", PROVIDER) from exc


def parse_patterns(text: str) -> List[Pattern]:
    data = _loads(_slice(_strip_fences(text or ""), "[", "]"))
    if not isinstance(data, list):
        raise MalformedResponseError("pattern output is not a JSON array", PROVIDER)
    try:
        return [Pattern.model_validate(_coerce_pattern(item)) for item in data]
    except ValidationError as exc:
        raise MalformedResponseError(f"pattern fields invalid: {exc}", PROVIDER) from exc

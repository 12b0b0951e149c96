"""
支撑 / 阻力位推导
按固定规则顺序从 52 周高低点与均线 / 布林带中收集价位，再做两轮补齐：
  平衡轮：价格上方或下方没有任何价位时，按 ±2% / ±5% 合成两条
  密度轮：总数不足 4 条时，补充整十心理价位（与已有价位相距 1.0 以内则跳过）
最终按价格降序返回（阻力在前，支撑在后）。
"""

import logging
import math
from typing import List, Optional

from market_service.models.analysis import IndicatorBundle, LevelKind, TechnicalLevel

logger = logging.getLogger(__name__)

MIN_LEVEL_COUNT = 4
ROUND_NUMBER_STEP = 10
ROUND_NUMBER_TOLERANCE = 1.0


def _near_existing(levels: List[TechnicalLevel], price: float) -> bool:
    return any(abs(level.price - price) < ROUND_NUMBER_TOLERANCE for level in levels)


def _distance_pct(level_price: float, current_price: float) -> float:
    """价位与现价的距离（%）；现价非正时为 inf"""
    if current_price <= 0:
        return math.inf
    return abs(level_price - current_price) / current_price * 100


def derive_levels(
    current_price: float,
    indicators: IndicatorBundle,
    week52_high: Optional[float] = None,
    week52_low: Optional[float] = None,
) -> List[TechnicalLevel]:
    levels: List[TechnicalLevel] = []
    bb = indicators.bollinger

    logger.debug(
        f"推导价位: price={current_price} 52wH={week52_high} 52wL={week52_low} "
        f"SMA20={indicators.sma20} SMA50={indicators.sma50} SMA200={indicators.sma200}"
    )

    # ── 阻力位 ────────────────────────────────────────────
    if week52_high is not None and week52_high > current_price * 1.02:
        pct = _distance_pct(week52_high, current_price)
        levels.append(TechnicalLevel(
            kind=LevelKind.MAJOR_RESISTANCE,
            price=week52_high,
            rationale=f"52-week high, {pct:.1f}% above current price",
        ))

    if indicators.sma200 is not None and indicators.sma200 > current_price:
        levels.append(TechnicalLevel(
            kind=LevelKind.NEAR_RESISTANCE,
            price=indicators.sma200,
            rationale="200-day moving average; long-term resistance",
        ))

    if indicators.sma50 is not None and indicators.sma50 > current_price:
        levels.append(TechnicalLevel(
            kind=LevelKind.NEAR_RESISTANCE,
            price=indicators.sma50,
            rationale="50-day moving average; medium-term resistance",
        ))

    if bb is not None and bb.upper > current_price:
        levels.append(TechnicalLevel(
            kind=LevelKind.NEAR_RESISTANCE,
            price=bb.upper,
            rationale="Upper Bollinger Band; immediate resistance zone",
        ))

    # ── 支撑位 ────────────────────────────────────────────
    if indicators.sma20 is not None and indicators.sma20 < current_price:
        levels.append(TechnicalLevel(
            kind=LevelKind.PIVOT_SUPPORT,
            price=indicators.sma20,
            rationale="20-day moving average; short-term support",
        ))

    if bb is not None and bb.lower < current_price:
        levels.append(TechnicalLevel(
            kind=LevelKind.PIVOT_SUPPORT,
            price=bb.lower,
            rationale="Lower Bollinger Band; immediate support zone",
        ))

    if indicators.sma50 is not None and indicators.sma50 < current_price:
        levels.append(TechnicalLevel(
            kind=LevelKind.STRONG_SUPPORT,
            price=indicators.sma50,
            rationale="50-day MA; key support level, held multiple times",
        ))

    if indicators.sma200 is not None and indicators.sma200 < current_price:
        levels.append(TechnicalLevel(
            kind=LevelKind.STRONG_SUPPORT,
            price=indicators.sma200,
            rationale="200-day MA; critical long-term support",
        ))

    if week52_low is not None and week52_low < current_price * 0.98:
        pct = _distance_pct(week52_low, current_price)
        levels.append(TechnicalLevel(
            kind=LevelKind.STRONG_SUPPORT,
            price=week52_low,
            rationale=f"52-week low, {pct:.1f}% below current price",
        ))

    # ── 平衡轮 ────────────────────────────────────────────
    has_resistance = any(level.price > current_price for level in levels)
    has_support = any(level.price < current_price for level in levels)

    if not has_resistance:
        levels.append(TechnicalLevel(
            kind=LevelKind.NEAR_RESISTANCE,
            price=current_price * 1.02,
            rationale="Near-term resistance; 2% above current price",
        ))
        levels.append(TechnicalLevel(
            kind=LevelKind.MAJOR_RESISTANCE,
            price=current_price * 1.05,
            rationale="Major resistance; 5% extension target",
        ))

    if not has_support:
        levels.append(TechnicalLevel(
            kind=LevelKind.PIVOT_SUPPORT,
            price=current_price * 0.98,
            rationale="Near-term support; 2% below current price",
        ))
        levels.append(TechnicalLevel(
            kind=LevelKind.STRONG_SUPPORT,
            price=current_price * 0.95,
            rationale="Strong support; 5% retracement level",
        ))

    # ── 密度轮 ────────────────────────────────────────────
    if len(levels) < MIN_LEVEL_COUNT:
        resistance_price = math.ceil(current_price / ROUND_NUMBER_STEP) * ROUND_NUMBER_STEP
        if resistance_price > current_price and not _near_existing(levels, resistance_price):
            levels.append(TechnicalLevel(
                kind=LevelKind.NEAR_RESISTANCE,
                price=float(resistance_price),
                rationale="Psychological resistance at round number",
            ))

        support_price = math.floor(current_price / ROUND_NUMBER_STEP) * ROUND_NUMBER_STEP
        if support_price < current_price and not _near_existing(levels, support_price):
            levels.append(TechnicalLevel(
                kind=LevelKind.PIVOT_SUPPORT,
                price=float(support_price),
                rationale="Psychological support at round number",
            ))

    return sorted(levels, key=lambda level: level.price, reverse=True)

"""
Layer 4 – 技术指标层
纯函数：SMA、EMA、RSI、MACD、布林带、平均成交量。
输入为按时间升序的序列；数据点不足时返回 None（类型化缺省），不抛异常、不以 0 代替。
所有函数无状态，可对不相交的输入并行调用。
"""

import math
from typing import List, Optional, Sequence

from market_service.models.analysis import BollingerBands, IndicatorBundle, MACDResult
from market_service.models.market import PriceHistory

VOLUME_SPIKE_MULTIPLIER = 1.5


# ── 均线 ──────────────────────────────────────────────────

def sma(prices: Sequence[float], period: int) -> Optional[float]:
    """最近 period 个值的简单平均"""
    if period <= 0 or len(prices) < period:
        return None
    recent = list(prices[-period:])
    return sum(recent) / period


def _ema_series(prices: Sequence[float], period: int) -> List[float]:
    """
    逐前缀的 EMA 序列

    返回值第 j 项等于 ema(prices[:period + j], period)。种子与逐步递推的运算顺序
    与单次调用 ema() 完全相同，因此结果逐位一致。
    """
    if period <= 0 or len(prices) < period:
        return []
    multiplier = 2.0 / (period + 1)
    value = sma(prices[:period], period)
    series = [value]
    for price in prices[period:]:
        value = (price - value) * multiplier + value
        series.append(value)
    return series


def ema(prices: Sequence[float], period: int) -> Optional[float]:
    """指数移动平均：以前 period 个值的 SMA 为种子逐步递推"""
    series = _ema_series(prices, period)
    return series[-1] if series else None


# ── RSI ───────────────────────────────────────────────────

def rsi(prices: Sequence[float], period: int = 14) -> Optional[float]:
    """相对强弱指数，取值 [0, 100]；窗口内无下跌时恰为 100"""
    if period <= 0 or len(prices) <= period:
        return None

    gains: List[float] = []
    losses: List[float] = []
    for prev, cur in zip(prices, prices[1:]):
        change = cur - prev
        gains.append(max(change, 0.0))
        losses.append(max(-change, 0.0))

    avg_gain = sma(gains, period)
    avg_loss = sma(losses, period)
    if avg_gain is None or avg_loss is None:
        return None
    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


# ── MACD ──────────────────────────────────────────────────

def macd(
    prices: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> Optional[MACDResult]:
    """
    MACD（DIF / 信号线 / 柱）

    信号线是 MACD 历史序列的 EMA：对下标 slow … n-1 结尾的每个前缀分别计算
    EMA(fast) - EMA(slow)。这里用逐前缀 EMA 序列一次性得到全部前缀的值，
    与逐个前缀重算结果相同。
    """
    fast_series = _ema_series(prices, fast)
    slow_series = _ema_series(prices, slow)
    if not fast_series or not slow_series:
        return None

    macd_line = fast_series[-1] - slow_series[-1]

    history: List[float] = []
    for i in range(slow, len(prices)):
        length = i + 1
        if length < fast:
            continue
        history.append(fast_series[length - fast] - slow_series[length - slow])

    signal_line = ema(history, signal)
    if signal_line is None:
        return None

    return MACDResult(macd=macd_line, signal=signal_line, histogram=macd_line - signal_line)


# ── 布林带 ────────────────────────────────────────────────

def bollinger_bands(
    prices: Sequence[float], period: int = 20, std_dev: float = 2.0
) -> Optional[BollingerBands]:
    """布林带：中轨为 SMA，标准差按总体口径（除以 period）"""
    middle = sma(prices, period)
    if middle is None:
        return None
    recent = list(prices[-period:])
    variance = sum((p - middle) ** 2 for p in recent) / period
    sigma = math.sqrt(variance)
    return BollingerBands(
        upper=middle + std_dev * sigma,
        middle=middle,
        lower=middle - std_dev * sigma,
    )


# ── 成交量 ────────────────────────────────────────────────

def average_volume(volumes: Sequence[int], period: int = 20) -> Optional[float]:
    if period <= 0 or len(volumes) < period:
        return None
    return sum(volumes[-period:]) / period


def is_volume_above_average(
    current_volume: int, volumes: Sequence[int], period: int = 20
) -> bool:
    """当前成交量是否超过均量的 1.5 倍；均量不可得时为 False"""
    avg = average_volume(volumes, period)
    if avg is None:
        return False
    return current_volume > avg * VOLUME_SPIKE_MULTIPLIER


# ── 全量指标 ──────────────────────────────────────────────

def compute_indicators(history: PriceHistory) -> IndicatorBundle:
    """一次性计算分析所需的全部指标"""
    closes = history.closes
    volumes = history.volumes
    return IndicatorBundle(
        sma20=sma(closes, 20),
        sma50=sma(closes, 50),
        sma200=sma(closes, 200),
        rsi=rsi(closes),
        macd=macd(closes),
        bollinger=bollinger_bands(closes),
        average_volume=average_volume(volumes),
    )

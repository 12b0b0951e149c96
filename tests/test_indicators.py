"""技术指标计算测试"""

import pytest

from market_service.layers import indicators as ind
from conftest import make_history


# ─────────────────────────────────────────────────────────
# 1. 数据不足时返回 None
# ─────────────────────────────────────────────────────────

class TestInsufficientData:
    SHORT = [1.0, 2.0, 3.0]

    def test_sma(self):
        assert ind.sma(self.SHORT, 5) is None

    def test_ema(self):
        assert ind.ema(self.SHORT, 5) is None

    def test_rsi_needs_period_plus_one(self):
        assert ind.rsi(list(range(14)), 14) is None
        assert ind.rsi(list(range(15)), 14) is not None

    def test_macd(self):
        assert ind.macd([float(i) for i in range(30)]) is None

    def test_bollinger(self):
        assert ind.bollinger_bands(self.SHORT, 20) is None

    def test_average_volume(self):
        assert ind.average_volume([100, 200], 20) is None

    def test_non_positive_period(self):
        assert ind.sma([1.0, 2.0], 0) is None
        assert ind.ema([1.0, 2.0], -1) is None


# ─────────────────────────────────────────────────────────
# 2. 均线
# ─────────────────────────────────────────────────────────

class TestMovingAverages:
    def test_sma_uses_last_period(self):
        assert ind.sma([1.0, 2.0, 3.0, 4.0, 5.0], 3) == pytest.approx(4.0)

    def test_ema_seeded_with_sma(self):
        # 种子 = (1+2+3)/3 = 2；multiplier = 0.5；(4-2)*0.5+2 = 3
        assert ind.ema([1.0, 2.0, 3.0, 4.0], 3) == pytest.approx(3.0)

    def test_ema_of_constant_series(self):
        assert ind.ema([7.0] * 30, 12) == pytest.approx(7.0)

    def test_ema_series_matches_prefix_ema(self):
        prices = [100 + (i % 7) * 1.3 - i * 0.2 for i in range(60)]
        series = ind._ema_series(prices, 12)
        for j, value in enumerate(series):
            assert value == ind.ema(prices[:12 + j], 12)


# ─────────────────────────────────────────────────────────
# 3. RSI
# ─────────────────────────────────────────────────────────

class TestRSI:
    def test_all_gains_is_exactly_100(self):
        assert ind.rsi([float(i) for i in range(1, 30)]) == 100.0

    def test_flat_series_is_100(self):
        assert ind.rsi([50.0] * 20) == 100.0

    def test_all_losses_is_zero(self):
        assert ind.rsi([float(i) for i in range(30, 0, -1)]) == pytest.approx(0.0)

    def test_range(self):
        prices = [100 + ((-1) ** i) * (i % 5) for i in range(80)]
        value = ind.rsi(prices)
        assert 0.0 <= value <= 100.0


# ─────────────────────────────────────────────────────────
# 4. MACD
# ─────────────────────────────────────────────────────────

class TestMACD:
    def _reference(self, prices, fast=12, slow=26, signal=9):
        """逐前缀重新计算的参考实现"""
        history = []
        for i in range(slow, len(prices)):
            prefix = prices[:i + 1]
            history.append(ind.ema(prefix, fast) - ind.ema(prefix, slow))
        return ind.ema(history, signal)

    def test_needs_slow_plus_signal_points(self):
        prices = [100.0 + i for i in range(26 + 9)]
        assert ind.macd(prices) is not None
        assert ind.macd(prices[:-1]) is None

    def test_signal_matches_prefix_reconstruction(self):
        prices = [100 + (i % 11) * 0.7 + i * 0.3 for i in range(120)]
        result = ind.macd(prices)
        assert result.signal == self._reference(prices)
        assert result.macd == ind.ema(prices, 12) - ind.ema(prices, 26)
        assert result.histogram == pytest.approx(result.macd - result.signal)

    def test_constant_series_is_zero(self):
        result = ind.macd([42.0] * 60)
        assert result.macd == pytest.approx(0.0)
        assert result.signal == pytest.approx(0.0)


# ─────────────────────────────────────────────────────────
# 5. 布林带 / 成交量 / 汇总
# ─────────────────────────────────────────────────────────

class TestBollingerAndVolume:
    def test_bands_ordered(self):
        prices = [100 + (i % 4) for i in range(40)]
        bb = ind.bollinger_bands(prices)
        assert bb.upper >= bb.middle >= bb.lower

    def test_population_std(self):
        # 20 个值：10 个 1、10 个 3 → 均值 2，总体标准差 1
        bb = ind.bollinger_bands([1.0, 3.0] * 10, 20)
        assert bb.middle == pytest.approx(2.0)
        assert bb.upper == pytest.approx(4.0)
        assert bb.lower == pytest.approx(0.0)

    def test_volume_spike(self):
        volumes = [1000] * 20
        assert ind.is_volume_above_average(1501, volumes) is True
        assert ind.is_volume_above_average(1500, volumes) is False

    def test_volume_spike_without_average(self):
        assert ind.is_volume_above_average(10**9, [1, 2, 3]) is False

    def test_compute_indicators(self):
        bundle = ind.compute_indicators(make_history(closes=[100.0 + i for i in range(60)]))
        assert bundle.sma20 == pytest.approx(sum(range(140, 160)) / 20)
        assert bundle.sma50 is not None
        assert bundle.sma200 is None
        assert bundle.rsi == 100.0
        assert bundle.macd is not None
        assert bundle.average_volume == 1_000_000

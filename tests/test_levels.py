"""支撑 / 阻力位推导测试"""

import pytest

from market_service.layers.levels import derive_levels
from market_service.models.analysis import BollingerBands, IndicatorBundle, LevelKind


def _prices(levels):
    return [round(level.price, 6) for level in levels]


class TestDeriveLevels:
    def test_worked_example(self):
        indicators = IndicatorBundle(sma20=98.0, sma50=101.0, sma200=90.0)
        levels = derive_levels(100.0, indicators, week52_high=120.0)

        assert _prices(levels) == [120.0, 101.0, 98.0, 90.0]
        assert [lv.kind for lv in levels] == [
            LevelKind.MAJOR_RESISTANCE,
            LevelKind.NEAR_RESISTANCE,
            LevelKind.PIVOT_SUPPORT,
            LevelKind.STRONG_SUPPORT,
        ]

    def test_worked_example_with_52_week_low(self):
        indicators = IndicatorBundle(sma20=98.0, sma50=101.0, sma200=90.0)
        levels = derive_levels(100.0, indicators, week52_high=120.0, week52_low=70.0)

        assert _prices(levels) == [120.0, 101.0, 98.0, 90.0, 70.0]
        assert levels[-1].kind is LevelKind.STRONG_SUPPORT
        assert levels[-1].rationale == "52-week low, 30.0% below current price"

    def test_52_week_high_within_two_percent_is_skipped(self):
        levels = derive_levels(100.0, IndicatorBundle(), week52_high=101.5)
        assert all(lv.price != 101.5 for lv in levels)

    def test_bollinger_levels(self):
        indicators = IndicatorBundle(
            bollinger=BollingerBands(upper=105.0, middle=100.0, lower=95.0)
        )
        levels = derive_levels(100.0, indicators)
        rationales = {lv.rationale for lv in levels}
        assert "Upper Bollinger Band; immediate resistance zone" in rationales
        assert "Lower Bollinger Band; immediate support zone" in rationales

    def test_balance_pass_without_indicators(self):
        levels = derive_levels(100.0, IndicatorBundle())
        prices = _prices(levels)
        assert 102.0 in prices and 105.0 in prices
        assert 98.0 in prices and 95.0 in prices
        # 已有 4 条，不再补整数位
        assert len(levels) == 4

    def test_balance_pass_adds_missing_side_only(self):
        # 只有支撑（SMA20 < 价格）→ 补两条阻力
        levels = derive_levels(100.0, IndicatorBundle(sma20=97.0))
        above = [lv for lv in levels if lv.price > 100.0]
        assert {lv.rationale for lv in above} == {
            "Near-term resistance; 2% above current price",
            "Major resistance; 5% extension target",
        }

    def test_round_number_density_pass(self):
        # 两条均线阻力 + 平衡轮 2 条支撑 = 4 条，不触发整数位
        levels = derive_levels(155.0, IndicatorBundle(sma50=170.0, sma200=180.0))
        assert len(levels) == 4

        # 单条阻力 + 平衡轮 2 条支撑 = 3 条 → 补 160 / 150 两个整数位
        levels = derive_levels(155.0, IndicatorBundle(sma50=170.0))
        prices = _prices(levels)
        assert 160.0 in prices
        assert 150.0 in prices
        assert any(lv.rationale == "Psychological support at round number" for lv in levels)
        assert any(lv.rationale == "Psychological resistance at round number" for lv in levels)

    def test_round_number_near_existing_is_skipped(self):
        # 上方整数位 150 与 SMA50=150.5 相距不足 1.0
        levels = derive_levels(143.0, IndicatorBundle(sma50=150.5))
        assert 150.0 not in _prices(levels)

    @pytest.mark.parametrize("price", [0.5, 9.99, 100.0, 143.27, 875.28])
    def test_invariants(self, price):
        indicators = IndicatorBundle(sma20=price * 1.01, sma50=price * 0.97)
        levels = derive_levels(price, indicators, week52_high=price * 1.3, week52_low=price * 0.6)
        prices = [lv.price for lv in levels]
        assert levels
        assert prices == sorted(prices, reverse=True)
        assert any(p > price for p in prices)
        assert any(p < price for p in prices)

    def test_zero_price_does_not_divide(self):
        levels = derive_levels(0.0, IndicatorBundle(), week52_high=120.0, week52_low=70.0)
        prices = _prices(levels)
        assert levels
        assert prices == sorted(prices, reverse=True)
        assert levels[0].kind is LevelKind.MAJOR_RESISTANCE
        assert levels[0].rationale == "52-week high, inf% above current price"

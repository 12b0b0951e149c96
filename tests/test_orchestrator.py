"""AI 编排器测试：服务选择、本地 → 云端回退、价位合并、双层缓存"""

import asyncio
from typing import List

import pytest

from market_service.ai.base import AIService
from market_service.ai.mock import MockAIService
from market_service.config import ServiceSettings
from market_service.db.store import MemoryRecordStore
from market_service.errors import MalformedResponseError, UpstreamUnavailableError
from market_service.layers.cache import CacheGateway
from market_service.models.analysis import (
    AIAnalysis,
    AIProviderId,
    AnalysisKind,
    IndicatorBundle,
    Pattern,
    Sentiment,
)
from market_service.models.market import PriceHistory, Quote
from market_service.services.ai_orchestrator import AIOrchestrator
from conftest import FakeClock, make_history, make_quote


class FakeAI(AIService):
    """记录调用参数的假分析服务"""

    def __init__(self, provider_id: AIProviderId, error: Exception = None, available: bool = True):
        self.provider_id = provider_id
        self.error = error
        self.available = available
        self.calls: List[tuple] = []

    def is_available(self) -> bool:
        return self.available

    def _check(self, *args):
        self.calls.append(args)
        if self.error is not None:
            raise self.error

    async def analyze(self, quote: Quote, history: PriceHistory, kind=AnalysisKind.GENERAL) -> AIAnalysis:
        self._check(quote, history, kind)
        return AIAnalysis(
            summary=f"{self.provider_id.value} summary",
            sentiment=Sentiment.NEUTRAL,
            recommendation="hold",
            confidence=0.5,
            provider=self.provider_id,
        )

    async def detect_patterns(self, history: PriceHistory) -> List[Pattern]:
        self._check(history)
        return []

    async def generate_insights(self, quote: Quote, indicators: IndicatorBundle) -> str:
        self._check(quote, indicators)
        return f"{self.provider_id.value} insights"

    async def answer_question(self, question: str, quote: Quote, context: str) -> str:
        self._check(question, quote, context)
        return f"{self.provider_id.value} answer"


def _orchestrator(
    on_device=None,
    cloud=None,
    mock=None,
    cache=None,
    use_mock_data=False,
    has_cloud_credentials=True,
):
    return AIOrchestrator(
        on_device=on_device or FakeAI(AIProviderId.ON_DEVICE, available=False),
        cloud=cloud or FakeAI(AIProviderId.GEMINI),
        mock=mock or FakeAI(AIProviderId.MOCK),
        cache=cache or CacheGateway(MemoryRecordStore(), ServiceSettings(), FakeClock()),
        use_mock_data=use_mock_data,
        has_cloud_credentials=has_cloud_credentials,
    )


# ─────────────────────────────────────────────────────────
# 1. 服务选择
# ─────────────────────────────────────────────────────────

class TestSelection:
    def test_mock_data_mode_wins(self):
        orch = _orchestrator(on_device=FakeAI(AIProviderId.ON_DEVICE), use_mock_data=True)
        assert orch.select_provider().provider_id is AIProviderId.MOCK

    def test_on_device_preferred(self):
        orch = _orchestrator(on_device=FakeAI(AIProviderId.ON_DEVICE))
        assert orch.select_provider().provider_id is AIProviderId.ON_DEVICE

    def test_cloud_when_credentials(self):
        assert _orchestrator().select_provider().provider_id is AIProviderId.GEMINI

    def test_mock_when_nothing_available(self):
        orch = _orchestrator(has_cloud_credentials=False)
        assert orch.select_provider().provider_id is AIProviderId.MOCK

    def test_selection_not_memoized(self):
        on_device = FakeAI(AIProviderId.ON_DEVICE, available=False)
        orch = _orchestrator(on_device=on_device)
        assert orch.select_provider().provider_id is AIProviderId.GEMINI
        on_device.available = True
        assert orch.select_provider().provider_id is AIProviderId.ON_DEVICE


# ─────────────────────────────────────────────────────────
# 2. 回退
# ─────────────────────────────────────────────────────────

class TestFallback:
    def test_on_device_failure_retries_cloud_once(self):
        on_device = FakeAI(AIProviderId.ON_DEVICE, error=RuntimeError("model crashed"))
        cloud = FakeAI(AIProviderId.GEMINI)
        orch = _orchestrator(on_device=on_device, cloud=cloud)
        quote, history = make_quote(), make_history()

        analysis = asyncio.run(orch.analyze(quote, history, AnalysisKind.WEEK_FORECAST))

        assert len(on_device.calls) == 1
        assert cloud.calls == [(quote, history, AnalysisKind.WEEK_FORECAST)]
        assert analysis.provider is AIProviderId.GEMINI

    def test_cloud_error_after_fallback_surfaces(self):
        on_device = FakeAI(AIProviderId.ON_DEVICE, error=RuntimeError("model crashed"))
        cloud = FakeAI(AIProviderId.GEMINI, error=MalformedResponseError("bad json", "gemini"))
        orch = _orchestrator(on_device=on_device, cloud=cloud)

        with pytest.raises(MalformedResponseError):
            asyncio.run(orch.analyze(make_quote(), make_history()))
        assert len(cloud.calls) == 1

    def test_cloud_failure_is_not_retried(self):
        cloud = FakeAI(AIProviderId.GEMINI, error=UpstreamUnavailableError("down", "gemini"))
        orch = _orchestrator(cloud=cloud)
        with pytest.raises(UpstreamUnavailableError):
            asyncio.run(orch.analyze(make_quote(), make_history()))
        assert len(cloud.calls) == 1

    def test_other_operations_fall_back(self):
        on_device = FakeAI(AIProviderId.ON_DEVICE, error=RuntimeError("boom"))
        orch = _orchestrator(on_device=on_device)
        quote, history = make_quote(), make_history()

        assert asyncio.run(orch.answer_question("why?", quote)) == "gemini answer"
        assert asyncio.run(orch.generate_insights(quote, history)) == "gemini insights"
        assert asyncio.run(orch.detect_patterns(history)) == []


# ─────────────────────────────────────────────────────────
# 3. 价位合并
# ─────────────────────────────────────────────────────────

class TestLevels:
    def test_levels_filled_in(self):
        orch = _orchestrator(mock=MockAIService(), use_mock_data=True)
        analysis = asyncio.run(orch.analyze(make_quote(price=130.0), make_history()))
        prices = [lv.price for lv in analysis.technical_levels]
        assert prices
        assert prices == sorted(prices, reverse=True)
        assert any(p > 130.0 for p in prices) and any(p < 130.0 for p in prices)


# ─────────────────────────────────────────────────────────
# 4. 缓存
# ─────────────────────────────────────────────────────────

class TestCaching:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = CacheGateway(MemoryRecordStore(), ServiceSettings(), self.clock)
        self.cloud = FakeAI(AIProviderId.GEMINI)
        self.orch = _orchestrator(cloud=self.cloud, cache=self.cache)
        self.quote, self.history = make_quote(), make_history()

    def test_memory_hit(self):
        async def go():
            first = await self.orch.analyze(self.quote, self.history)
            second = await self.orch.analyze(self.quote, self.history)
            return first, second

        first, second = asyncio.run(go())
        assert first is second
        assert len(self.cloud.calls) == 1

    def test_kind_is_part_of_key(self):
        async def go():
            await self.orch.analyze(self.quote, self.history, AnalysisKind.GENERAL)
            await self.orch.analyze(self.quote, self.history, AnalysisKind.MONTH_FORECAST)

        asyncio.run(go())
        assert len(self.cloud.calls) == 2

    def test_persistent_tier_shared_across_instances(self):
        other = _orchestrator(cloud=self.cloud, cache=self.cache)

        async def go():
            first = await self.orch.analyze(self.quote, self.history)
            second = await other.analyze(self.quote, self.history)
            return first, second

        first, second = asyncio.run(go())
        assert second == first
        assert len(self.cloud.calls) == 1

    def test_persistent_tier_expires(self):
        async def go():
            await self.orch.analyze(self.quote, self.history)
            self.orch.invalidate()
            self.clock.advance(3601)
            await self.orch.analyze(self.quote, self.history)

        asyncio.run(go())
        assert len(self.cloud.calls) == 2

    def test_force_refresh(self):
        async def go():
            await self.orch.analyze(self.quote, self.history)
            await self.orch.analyze(self.quote, self.history, force_refresh=True)

        asyncio.run(go())
        assert len(self.cloud.calls) == 2

    def test_invalidate_clears_memory_only(self):
        async def go():
            await self.orch.analyze(self.quote, self.history)
            cleared = self.orch.invalidate()
            await self.orch.refresh(self.quote, self.history)
            return cleared

        assert asyncio.run(go()) == 1
        # 持久化层仍命中
        assert len(self.cloud.calls) == 1

    def test_force_provider(self):
        mock = FakeAI(AIProviderId.MOCK)
        orch = _orchestrator(cloud=self.cloud, mock=mock, cache=self.cache)
        analysis = asyncio.run(orch.analyze(self.quote, self.history, force_provider=AIProviderId.MOCK))
        assert analysis.provider is AIProviderId.MOCK
        assert self.cloud.calls == []

"""
Layer 2 – 持久化缓存网关
报价 / K 线区间 / AI 分析三类缓存，各自独立的最大有效期。

记录格式：{"key": ..., "timestamp": 写入时刻（epoch 秒）, "payload": 模型 JSON}
命中条件：now - timestamp <= max_age
写入前先删除同键旧记录；读失败按未命中处理，写失败只记日志、不向上抛出。
"""

import logging
import time
from datetime import date
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from market_service.config import ServiceSettings
from market_service.db.store import RecordStore
from market_service.models.analysis import AIAnalysis, AIProviderId, AnalysisKind
from market_service.models.market import PriceHistory, Quote

logger = logging.getLogger(__name__)

QUOTE_COLLECTION = "quote_cache"
HISTORY_COLLECTION = "history_cache"
ANALYSIS_COLLECTION = "analysis_cache"

M = TypeVar("M", bound=BaseModel)


def history_key(ticker: str, start: date, end: date) -> str:
    return f"{ticker}-{start.isoformat()}-{end.isoformat()}"


def analysis_key(ticker: str, provider: AIProviderId, kind: AnalysisKind) -> str:
    return f"{ticker}-{provider.value}-{kind.value}"


class CacheGateway:
    """持久化缓存网关（唯一拥有缓存记录的组件）"""

    def __init__(
        self,
        store: RecordStore,
        settings: ServiceSettings,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._settings = settings
        self._clock = clock

    # ── 通用读写 ──────────────────────────────────────────

    async def _read(
        self, collection: str, key: str, max_age: float, model: Type[M]
    ) -> Optional[M]:
        try:
            record = await self._store.get(collection, key)
        except Exception as exc:
            logger.warning(f"⚠️ 缓存读取失败（按未命中处理）{collection}/{key}: {exc}")
            return None

        if not record:
            logger.debug(f"缓存未命中: {collection}/{key}")
            return None

        age = self._clock() - float(record.get("timestamp", 0))
        if age > max_age:
            logger.debug(f"缓存已过期: {collection}/{key}（{age:.0f}s > {max_age}s）")
            return None

        try:
            value = model.model_validate(record["payload"])
        except (KeyError, ValidationError) as exc:
            logger.warning(f"⚠️ 缓存记录损坏（按未命中处理）{collection}/{key}: {exc}")
            return None

        logger.debug(f"缓存命中: {collection}/{key}")
        return value

    async def _write(
        self,
        collection: str,
        key: str,
        value: BaseModel,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        record = {
            "key": key,
            "timestamp": self._clock(),
            "payload": value.model_dump(mode="json"),
        }
        if extra:
            record.update(extra)
        try:
            await self._store.delete(collection, key)
            await self._store.upsert(collection, record)
            logger.debug(f"缓存写入: {collection}/{key}")
        except Exception as exc:
            logger.warning(f"⚠️ 缓存写入失败 {collection}/{key}: {exc}")

    # ── 报价 ──────────────────────────────────────────────

    async def get_quote(self, ticker: str, max_age: Optional[float] = None) -> Optional[Quote]:
        if max_age is None:
            max_age = self._settings.QUOTE_CACHE_MAX_AGE
        return await self._read(QUOTE_COLLECTION, ticker, max_age, Quote)

    async def put_quote(self, quote: Quote) -> None:
        await self._write(QUOTE_COLLECTION, quote.ticker, quote, {"ticker": quote.ticker})

    # ── K 线区间 ──────────────────────────────────────────

    async def get_history(
        self, ticker: str, start: date, end: date, max_age: Optional[float] = None
    ) -> Optional[PriceHistory]:
        if max_age is None:
            max_age = self._settings.HISTORY_CACHE_MAX_AGE
        return await self._read(
            HISTORY_COLLECTION, history_key(ticker, start, end), max_age, PriceHistory
        )

    async def put_history(self, history: PriceHistory) -> None:
        await self._write(
            HISTORY_COLLECTION,
            history_key(history.ticker, history.start, history.end),
            history,
            {"ticker": history.ticker},
        )

    # ── AI 分析 ───────────────────────────────────────────

    async def get_analysis(
        self,
        ticker: str,
        provider: AIProviderId,
        kind: AnalysisKind,
        max_age: Optional[float] = None,
    ) -> Optional[AIAnalysis]:
        if max_age is None:
            max_age = self._settings.ANALYSIS_CACHE_MAX_AGE
        return await self._read(
            ANALYSIS_COLLECTION, analysis_key(ticker, provider, kind), max_age, AIAnalysis
        )

    async def put_analysis(
        self,
        ticker: str,
        provider: AIProviderId,
        kind: AnalysisKind,
        analysis: AIAnalysis,
    ) -> None:
        await self._write(
            ANALYSIS_COLLECTION,
            analysis_key(ticker, provider, kind),
            analysis,
            {"ticker": ticker, "provider": provider.value, "kind": kind.value},
        )

    # ── 维护 ──────────────────────────────────────────────

    async def clear_expired(self) -> Dict[str, int]:
        """删除超过清理阈值的缓存记录，返回各类删除数量"""
        now = self._clock()
        thresholds = {
            QUOTE_COLLECTION: self._settings.QUOTE_CACHE_PURGE_AGE,
            HISTORY_COLLECTION: self._settings.HISTORY_CACHE_PURGE_AGE,
            ANALYSIS_COLLECTION: self._settings.ANALYSIS_CACHE_MAX_AGE,
        }
        removed: Dict[str, int] = {}
        for collection, purge_age in thresholds.items():
            cutoff = now - purge_age
            try:
                expired = await self._store.scan(
                    collection, where=lambda r: float(r.get("timestamp", 0)) < cutoff
                )
                for record in expired:
                    await self._store.delete(collection, record["key"])
                removed[collection] = len(expired)
            except Exception as exc:
                logger.warning(f"⚠️ 过期缓存清理失败 {collection}: {exc}")
                removed[collection] = 0

        logger.info(f"🔄 过期缓存清理完成: {removed}")
        return removed

    async def clear_all(self) -> Dict[str, int]:
        removed: Dict[str, int] = {}
        for collection in (QUOTE_COLLECTION, HISTORY_COLLECTION, ANALYSIS_COLLECTION):
            removed[collection] = await self._store.delete_all(collection)
        return removed

    async def stats(self) -> Dict[str, Any]:
        """各类缓存记录数量"""
        result: Dict[str, Any] = {"backend": self._store.backend}
        for collection in (QUOTE_COLLECTION, HISTORY_COLLECTION, ANALYSIS_COLLECTION):
            try:
                result[collection] = {"records": await self._store.count(collection)}
            except Exception as exc:
                result[collection] = {"status": "error", "error": str(exc)}
        return result

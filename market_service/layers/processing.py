"""
Layer 3 – 数据处理层
把各提供商返回的原始 K 线记录清洗、去重、排序，统一转换为 PriceHistory。
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from market_service.models.market import PriceBar, PriceHistory

logger = logging.getLogger(__name__)

_PRICE_COLUMNS = ["open", "high", "low", "close"]


class ProcessingLayer:
    """数据处理层：清洗 + 标准化"""

    def normalize_ohlcv(self, records: List[Dict[str, Any]]) -> pd.DataFrame:
        """
        将原始 OHLCV 记录列表标准化为 DataFrame

        标准列：date, open, high, low, close, volume
        无法解析日期或收盘价的行会被丢弃；同一日期保留最后一条。
        """
        if not records:
            return pd.DataFrame(columns=["date"] + _PRICE_COLUMNS + ["volume"])

        df = pd.DataFrame(records)

        for col in _PRICE_COLUMNS + ["volume", "date"]:
            if col not in df.columns:
                df[col] = None

        for col in _PRICE_COLUMNS:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        df["volume"] = pd.to_numeric(df["volume"], errors="coerce").fillna(0)

        # 日期统一为 date 对象（兼容 "YYYY-MM-DD"、"YYYY-MM-DD HH:MM:SS"、date）
        df["date"] = pd.to_datetime(df["date"], errors="coerce")
        dropped = len(df)
        df = df.dropna(subset=["date", "close"])
        dropped -= len(df)
        if dropped:
            logger.debug(f"丢弃 {dropped} 条无效 K 线记录")

        # 缺失的开 / 高 / 低价以收盘价补齐
        for col in ("open", "high", "low"):
            df[col] = df[col].fillna(df["close"])

        df["date"] = df["date"].dt.date
        df = df.drop_duplicates(subset=["date"], keep="last")
        df = df.sort_values("date").reset_index(drop=True)
        return df

    def filter_date_range(
        self,
        df: pd.DataFrame,
        start: Optional[date],
        end: Optional[date],
    ) -> pd.DataFrame:
        """按日期闭区间 [start, end] 过滤"""
        if df.empty:
            return df
        if start:
            df = df[df["date"] >= start]
        if end:
            df = df[df["date"] <= end]
        return df.reset_index(drop=True)

    def to_bars(self, df: pd.DataFrame) -> List[PriceBar]:
        if df.empty:
            return []
        return [
            PriceBar(
                date=row["date"],
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=int(row["volume"]),
            )
            for row in df.to_dict(orient="records")
        ]

    def to_history(
        self,
        ticker: str,
        start: date,
        end: date,
        records: List[Dict[str, Any]],
    ) -> PriceHistory:
        """原始记录 → 区间内按日期升序、无重复的 PriceHistory"""
        df = self.normalize_ohlcv(records)
        df = self.filter_date_range(df, start, end)
        return PriceHistory(ticker=ticker, start=start, end=end, bars=self.to_bars(df))

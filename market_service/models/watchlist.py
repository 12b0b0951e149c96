"""自选股与行情快照模型"""

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, Field

from market_service.models.market import Quote


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class WatchlistItem(BaseModel):
    """自选股条目：按 ticker 唯一，顺序由 sort_order 决定"""
    ticker: str
    company_name: str = ""
    sort_order: int = 0
    added_at: datetime = Field(default_factory=_utcnow)


class WatchlistSnapshot(BaseModel):
    """指数 + 自选股报价（取不到报价的代码被略去）"""
    indices: List[Quote] = Field(default_factory=list)
    watchlist: List[Quote] = Field(default_factory=list)

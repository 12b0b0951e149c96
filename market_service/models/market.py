"""行情数据模型：报价、K 线、搜索结果"""

from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Quote(BaseModel):
    """某一时刻的报价快照，刷新时整体替换，不做局部修改"""

    model_config = ConfigDict(frozen=True)

    ticker: str
    company_name: str
    current_price: float
    daily_change: float
    daily_change_percent: float
    volume: int = 0
    previous_close: Optional[float] = None
    open_price: Optional[float] = None
    avg_volume: Optional[int] = None
    week52_high: Optional[float] = None
    week52_low: Optional[float] = None
    market_cap: Optional[float] = None
    pe_ratio: Optional[float] = None
    post_market_change: Optional[float] = None
    post_market_change_percent: Optional[float] = None
    last_updated: datetime = Field(default_factory=_utcnow)

    @property
    def is_positive(self) -> bool:
        return self.daily_change >= 0


class PriceBar(BaseModel):
    """单根 OHLCV K 线"""

    model_config = ConfigDict(frozen=True)

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int = 0


class PriceHistory(BaseModel):
    """某个代码在 [start, end] 区间内按日期升序、无重复日期的 K 线序列"""

    model_config = ConfigDict(frozen=True)

    ticker: str
    start: date
    end: date
    bars: List[PriceBar] = Field(default_factory=list)

    @field_validator("bars")
    @classmethod
    def _ascending_unique(cls, bars: List[PriceBar]) -> List[PriceBar]:
        for prev, cur in zip(bars, bars[1:]):
            if cur.date <= prev.date:
                raise ValueError("bars must be strictly ascending by date")
        return bars

    @property
    def closes(self) -> List[float]:
        return [bar.close for bar in self.bars]

    @property
    def volumes(self) -> List[int]:
        return [bar.volume for bar in self.bars]

    def __len__(self) -> int:
        return len(self.bars)


class SearchResult(BaseModel):
    """代码搜索结果"""

    model_config = ConfigDict(frozen=True)

    ticker: str
    name: str
    market: str = "stocks"
    locale: str = "us"
    primary_exchange: Optional[str] = None
    type: str = "CS"
    active: bool = True

"""OHLCV 清洗与标准化测试"""

import random
from datetime import date, timedelta

from market_service.layers.processing import ProcessingLayer


def _sample_records(n: int = 30) -> list:
    records = []
    close = 100.0
    start = date(2024, 1, 1)
    for i in range(n):
        d = (start + timedelta(days=i)).isoformat()
        close = round(close * (1 + random.uniform(-0.02, 0.02)), 2)
        records.append({
            "date": d,
            "open": round(close * 0.99, 2),
            "high": round(close * 1.01, 2),
            "low": round(close * 0.98, 2),
            "close": close,
            "volume": random.randint(100000, 5000000),
        })
    return records


class TestProcessingLayer:
    def setup_method(self):
        self.proc = ProcessingLayer()

    def test_normalize_empty(self):
        df = self.proc.normalize_ohlcv([])
        assert df.empty

    def test_normalize_basic(self):
        df = self.proc.normalize_ohlcv(_sample_records(10))
        assert len(df) == 10
        assert "close" in df.columns
        assert "date" in df.columns

    def test_normalize_sorts_by_date(self):
        df = self.proc.normalize_ohlcv(_sample_records(5)[::-1])
        dates = df["date"].tolist()
        assert dates == sorted(dates)

    def test_string_numbers_are_parsed(self):
        df = self.proc.normalize_ohlcv([
            {"date": "2024-03-01", "open": "10.5", "high": "11", "low": "10", "close": "10.8", "volume": "1200"},
        ])
        assert df.loc[0, "close"] == 10.8
        assert df.loc[0, "volume"] == 1200

    def test_invalid_rows_dropped(self):
        df = self.proc.normalize_ohlcv([
            {"date": "2024-03-01", "close": 10.0},
            {"date": "not-a-date", "close": 11.0},
            {"date": "2024-03-02", "close": None},
        ])
        assert len(df) == 1

    def test_missing_prices_filled_from_close(self):
        df = self.proc.normalize_ohlcv([{"date": "2024-03-01", "close": 10.0}])
        assert df.loc[0, "open"] == 10.0
        assert df.loc[0, "high"] == 10.0
        assert df.loc[0, "low"] == 10.0
        assert df.loc[0, "volume"] == 0

    def test_duplicate_dates_keep_last(self):
        df = self.proc.normalize_ohlcv([
            {"date": "2024-03-01", "close": 10.0},
            {"date": "2024-03-01", "close": 12.0},
        ])
        assert len(df) == 1
        assert df.loc[0, "close"] == 12.0

    def test_filter_date_range(self):
        df = self.proc.normalize_ohlcv(_sample_records(30))
        filtered = self.proc.filter_date_range(df, date(2024, 1, 5), date(2024, 1, 15))
        assert len(filtered) == 11
        assert all(date(2024, 1, 5) <= d <= date(2024, 1, 15) for d in filtered["date"])

    def test_to_history(self):
        history = self.proc.to_history(
            "AAPL", date(2024, 1, 3), date(2024, 1, 7), _sample_records(10)[::-1]
        )
        assert history.ticker == "AAPL"
        assert len(history) == 5
        assert [bar.date for bar in history.bars] == [date(2024, 1, d) for d in range(3, 8)]
        assert all(isinstance(bar.volume, int) for bar in history.bars)

"""路由公共依赖：从 app.state 取服务容器"""

from datetime import date, timedelta
from typing import Optional

from fastapi import Request

from market_service.container import ServiceContainer
from market_service.errors import InvalidRequestError


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _days_ago(n: int) -> date:
    return date.today() - timedelta(days=n)


def parse_date_range(
    start_date: Optional[str], end_date: Optional[str], default_days: int
) -> tuple:
    """解析 YYYY-MM-DD 区间，缺省为最近 default_days 天"""
    try:
        start = date.fromisoformat(start_date) if start_date else _days_ago(default_days)
        end = date.fromisoformat(end_date) if end_date else date.today()
    except ValueError as exc:
        raise InvalidRequestError(f"invalid date: {exc}")
    if start > end:
        raise InvalidRequestError(f"start date {start} is after end date {end}")
    return start, end


def dump(value):
    """pydantic 模型（或其列表）转为 JSON 兼容结构"""
    if isinstance(value, list):
        return [dump(v) for v in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value

"""统一 API 响应模型"""

from typing import Any, Optional
from pydantic import BaseModel

from market_service.errors import MarketServiceError


class ApiResponse(BaseModel):
    """标准 API 响应封装"""
    success: bool = True
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls, error: str, message: str = "failed", error_kind: Optional[str] = None
    ) -> "ApiResponse":
        return cls(success=False, error=error, message=message, error_kind=error_kind)

    @classmethod
    def from_error(cls, exc: MarketServiceError) -> "ApiResponse":
        return cls.fail(error=str(exc), message=exc.message, error_kind=exc.kind.value)

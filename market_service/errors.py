"""
错误分类
所有对外暴露的失败都归入以下类别之一，调用方只会拿到值或一个明确分类的错误。

insufficient_data 不是错误：指标数据不足时返回 None（类型化缺省）。
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_REQUEST = "invalid_request"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    UPSTREAM_AUTH_REJECTED = "upstream_auth_rejected"
    UPSTREAM_NOT_FOUND = "upstream_not_found"
    UPSTREAM_SERVER_ERROR = "upstream_server_error"
    MALFORMED_UPSTREAM_RESPONSE = "malformed_upstream_response"


class MarketServiceError(Exception):
    """服务错误基类"""

    kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE

    def __init__(self, message: str = "", provider: Optional[str] = None):
        self.message = message or self.kind.value
        self.provider = provider
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.kind.value}: {self.message}"
        return f"{self.kind.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "provider": self.provider, "message": self.message}


class MissingCredentialError(MarketServiceError):
    kind = ErrorKind.MISSING_CREDENTIAL


class InvalidRequestError(MarketServiceError):
    kind = ErrorKind.INVALID_REQUEST


class UpstreamUnavailableError(MarketServiceError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class UpstreamRateLimitedError(MarketServiceError):
    kind = ErrorKind.UPSTREAM_RATE_LIMITED


class UpstreamAuthRejectedError(MarketServiceError):
    kind = ErrorKind.UPSTREAM_AUTH_REJECTED


class UpstreamNotFoundError(MarketServiceError):
    kind = ErrorKind.UPSTREAM_NOT_FOUND


class UpstreamServerError(MarketServiceError):
    kind = ErrorKind.UPSTREAM_SERVER_ERROR

    def __init__(self, status_code: int, message: str = "", provider: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or "Unknown error", provider)

    def __str__(self) -> str:
        return f"{super().__str__()} (HTTP {self.status_code})"

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class MalformedResponseError(MarketServiceError):
    kind = ErrorKind.MALFORMED_UPSTREAM_RESPONSE
